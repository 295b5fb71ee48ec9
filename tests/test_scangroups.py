import os

import pandas as pd

from easyphrp.results import SearchResult
from easyphrp.scangroups import ScanGroupAssembler, ScanGroupRecord, SCAN_GROUP_COLUMNS
from easyphrp.util import ErrorAccumulator


def _result(scan, charge=2, spec_index="", frag_method=""):
    return SearchResult(scan=scan, charge=str(charge), charge_num=charge, spec_index=spec_index,
                        frag_method=frag_method, peptide="K.PEPTIDEK.L")


def test_expand_single_scan():
    assembler = ScanGroupAssembler()
    result = _result("100", spec_index="5", frag_method="HCD")

    assert assembler.expand(result) == [result]
    assert assembler.records() == []


def test_expand_merged_scans():
    assembler = ScanGroupAssembler()
    expanded = assembler.expand(_result("100/101/102", spec_index="5/6/7", frag_method="CID/ETD/HCD"))

    assert [r.scan for r in expanded] == ["100", "101", "102"]
    assert [r.scan_num for r in expanded] == [100, 101, 102]
    assert [r.spec_index for r in expanded] == ["5", "6", "7"]
    assert [r.frag_method for r in expanded] == ["CID", "ETD", "HCD"]
    assert all(r.peptide == "K.PEPTIDEK.L" for r in expanded)


def test_expand_mismatched_lists():
    errors = ErrorAccumulator()
    assembler = ScanGroupAssembler(errors)
    expanded = assembler.expand(_result("100/101", spec_index="5/6/7", frag_method="CID"))

    assert [r.spec_index for r in expanded] == ["5", "6"]
    assert [r.frag_method for r in expanded] == ["CID", ""]
    assert len(errors.warnings) == 1


def test_single_merge_event_has_no_group():
    assembler = ScanGroupAssembler()
    assembler.expand(_result("100/101/102"))
    # several PSMs of the same merged spectrum
    assembler.expand(_result("100/101/102"))

    assert assembler.records() == []


def test_shared_scan_allocates_group():
    assembler = ScanGroupAssembler()
    assembler.expand(_result("100/101/102"))
    assembler.expand(_result("101/103"))

    assert assembler.records() == [ScanGroupRecord(1, 2, 100), ScanGroupRecord(1, 2, 101),
                                   ScanGroupRecord(1, 2, 102), ScanGroupRecord(1, 2, 103)]


def test_charge_separates_groups():
    assembler = ScanGroupAssembler()
    assembler.expand(_result("100/101", charge=2))
    assembler.expand(_result("101/102", charge=3))

    assert assembler.records() == []


def test_independent_groups_and_bridge():
    assembler = ScanGroupAssembler()
    assembler.record_group_membership(2, [1, 2])
    assembler.record_group_membership(2, [3, 4])
    assembler.record_group_membership(2, [2, 5])
    assembler.record_group_membership(2, [4, 6])

    assert {r.scan_group_id for r in assembler.records()} == {1, 2}

    assembler.record_group_membership(2, [5, 6])

    records = assembler.records()
    assert {r.scan_group_id for r in records} == {1}
    assert [r.scan for r in records] == [1, 2, 3, 4, 5, 6]


def test_bridging_three_groups():
    assembler = ScanGroupAssembler()
    for scans in ([1, 2], [2, 3], [10, 11], [11, 12], [20, 21], [21, 22]):
        assembler.record_group_membership(2, scans)
    assert {r.scan_group_id for r in assembler.records()} == {1, 2, 3}

    assembler.record_group_membership(2, [22, 12, 3])

    assert {r.scan_group_id for r in assembler.records()} == {1}
    # later groups keep their own id
    assembler.record_group_membership(2, [30, 31])
    assembler.record_group_membership(2, [31, 32])
    assert {r.scan_group_id for r in assembler.records() if r.scan >= 30} == {4}


def test_long_chain_is_one_group():
    assembler = ScanGroupAssembler()
    for scan in range(1, 2001):
        assembler.record_group_membership(2, [scan, scan + 1])

    records = assembler.records()
    assert {r.scan_group_id for r in records} == {1}
    assert [r.scan for r in records] == list(range(1, 2002))


def test_repeated_scan_in_one_event():
    assembler = ScanGroupAssembler()
    assembler.record_group_membership(2, [7, 7])

    assert assembler.records() == []


def test_write(tmpdir):
    scan_group_file = tmpdir.join("Dataset_ScanGroupInfo.txt").strpath

    assembler = ScanGroupAssembler()
    assembler.expand(_result("100/101"))
    assert not assembler.write(scan_group_file)
    assert not os.path.exists(scan_group_file)

    assembler.expand(_result("101/102"))
    assert assembler.write(scan_group_file)

    df = pd.read_csv(scan_group_file, sep="\t")
    assert list(df.columns) == SCAN_GROUP_COLUMNS
    assert df['Scan'].tolist() == [100, 101, 102]
    assert df['Scan_Group_ID'].tolist() == [1, 1, 1]
