import csv
import os
from collections import Counter
from typing import Dict, List, NamedTuple, Optional

import click
import pandas as pd

from .annotation import rewrite_peptide, replace_terminus, split_prefix_suffix
from .masses import (compute_peptide_mass, convolute_mass, ppm_to_mass, compute_delm_corrected_ppm,
                     dbl_to_string, mass_error_to_string)
from .modifications import extract_mods_from_param_file, extract_precursor_tolerance, PrecursorTolerance
from .proteins import split_protein_list, add_update_prefix_suffix, compute_cleavage_state, read_protein_order
from .ranking import (FirstHitTracker, sort_results, results_by_scan, store_syn_matches,
                      store_top_fht_match, passes_syn_filter,
                      SYNOPSIS_EVALUE_THRESHOLD, SYNOPSIS_SPEC_EVALUE_THRESHOLD)
from .results import SearchResult, int_safe, float_safe
from .scangroups import ScanGroupAssembler
from .util import timestamped_echo, basename_wo_ext, ErrorAccumulator


SYNOPSIS_FILE_SUFFIX = "_syn.txt"
FIRST_HITS_FILE_SUFFIX = "_fht.txt"
SCAN_GROUP_FILE_SUFFIX = "_ScanGroupInfo.txt"
MOD_DEFS_FILE_SUFFIX = "_ModDefs.txt"
MOD_SUMMARY_FILE_SUFFIX = "_syn_ModSummary.txt"

# ppm errors beyond this multiple of the search tolerance are recomputed from the precursor m/z
PRECURSOR_TOLERANCE_FACTOR = 1.5

# MS-GF+ and MSGFDB header names (case-insensitive) mapped to internal column keys
COLUMN_ALIASES = {
    "#SpecFile": "spec_file",
    "SpecIndex": "spec_index",
    "SpecID": "spec_index",
    "Scan#": "scan",
    "ScanNum": "scan",
    "ScanTime(Min)": "scan_time",
    "FragMethod": "frag_method",
    "Precursor": "precursor_mz",
    "IsotopeError": "isotope_error",
    "PMError(Da)": "pm_error_da",
    "PrecursorError(Da)": "pm_error_da",
    "PMError(ppm)": "pm_error_ppm",
    "PrecursorError(ppm)": "pm_error_ppm",
    "Charge": "charge",
    "Peptide": "peptide",
    "Protein": "protein",
    "DeNovoScore": "de_novo_score",
    "MSGFScore": "msgf_score",
    "SpecProb": "spec_evalue",
    "SpecEValue": "spec_evalue",
    "P-value": "evalue",
    "EValue": "evalue",
    "FDR": "qvalue",
    "QValue": "qvalue",
    "PepFDR": "pep_qvalue",
    "PepQValue": "pep_qvalue",
    "EFDR": "efdr",
    "IMS_Scan": "ims_scan",
    "IMS_Drift_Time": "ims_drift_time",
}

REQUIRED_COLUMNS = {"scan": "Scan#", "charge": "Charge", "peptide": "Peptide",
                    "spec_evalue": "SpecEValue", "evalue": "EValue"}


class ResultsFileError(click.ClickException):
    def __init__(self, message):
        super().__init__("Error reading MS-GF+ results: %s" % message)


class MalformedRecordError(ValueError):
    pass


class UnresolvedModMassError(ValueError):
    pass


class ResultFileFlags(NamedTuple):
    include_fdr_and_pepfdr: bool = False
    include_efdr: bool = False
    include_ims_fields: bool = False
    is_msgfplus: bool = False

    @classmethod
    def from_column_map(cls, column_map):
        include_fdr_and_pepfdr = "qvalue" in column_map or "pep_qvalue" in column_map
        return cls(include_fdr_and_pepfdr=include_fdr_and_pepfdr,
                   include_efdr=not include_fdr_and_pepfdr and "efdr" in column_map,
                   include_ims_fields="ims_drift_time" in column_map,
                   is_msgfplus="isotope_error" in column_map)


def build_column_map(header: List[str]) -> Dict[str, str]:
    """
    Map internal column keys to the header names of a results file.
    The first column with a recognized name wins.
    """
    aliases = {name.lower(): key for name, key in COLUMN_ALIASES.items()}

    column_map = {}
    for column in header:
        key = aliases.get(str(column).strip().lower())
        if key is not None and key not in column_map:
            column_map[key] = column

    missing = [name for key, name in REQUIRED_COLUMNS.items() if key not in column_map]
    if missing:
        raise ResultsFileError("Header line is missing required column(s) %s; is this an MS-GF+ or MSGFDB TSV file?" % ", ".join(missing))

    return column_map


def output_columns(flags: ResultFileFlags) -> List[str]:
    columns = ['ResultID', 'Scan', 'FragMethod', 'SpecIndex', 'Charge', 'PrecursorMZ', 'DelM', 'DelM_PPM',
               'MH', 'Peptide', 'Protein', 'NTT', 'DeNovoScore', 'MSGFScore']

    if flags.is_msgfplus:
        columns += ['MSGFDB_SpecEValue', 'Rank_MSGFDB_SpecEValue', 'EValue']
    else:
        columns += ['MSGFDB_SpecProb', 'Rank_MSGFDB_SpecProb', 'PValue']

    if flags.include_fdr_and_pepfdr:
        if flags.is_msgfplus:
            columns += ['QValue', 'PepQValue']
        else:
            columns += ['FDR', 'PepFDR']
    elif flags.include_efdr:
        columns += ['EFDR', 'PepFDR']

    if flags.is_msgfplus:
        columns.append('IsotopeError')

    if flags.include_ims_fields:
        columns += ['IMS_Scan', 'IMS_Drift_Time']

    return columns


def normalize_spec_index(spec_index, spec_id_to_index):
    """
    MS-GF+ reports native IDs like 'index=12' or 'controllerType=0 controllerNumber=1 scan=5';
    the former become 12, others get a sequential number in order of appearance.
    """
    if spec_index == "":
        return spec_index

    try:
        int(spec_index)
        return spec_index
    except ValueError:
        pass

    if spec_index.startswith("index=") and len(spec_index) > len("index="):
        return spec_index[len("index="):]

    if spec_index not in spec_id_to_index:
        spec_id_to_index[spec_index] = len(spec_id_to_index) + 1
    return str(spec_id_to_index[spec_index])


def trim_zero_if_not_first_id(result_id, value):
    if result_id > 1 and value == "0.0":
        return "0"
    return value


class MSGFPlusResultsParser:
    """
    Parse an MS-GF+ (or MSGFDB) TSV file into SearchResult records.

    Each line is expanded into one record per scan of a merged spectrum and one
    record per protein. Lines are collected for the synopsis file when they pass
    the score filter and for the first hits file when they are the first line of
    their scan and charge.
    """

    def __init__(
        self,
        results_tsv: str,
        catalog,
        precursor_tolerance: Optional[PrecursorTolerance] = None,
        protein_order: Optional[Dict[str, int]] = None,
        errors: Optional[ErrorAccumulator] = None,
        chunksize: int = 100_000,
    ):
        self.results_tsv = results_tsv
        self.catalog = catalog
        self.custom_residue_masses = catalog.custom_residue_masses
        self.precursor_tolerance = precursor_tolerance or PrecursorTolerance()
        self.protein_order = protein_order or {}
        self.errors = errors or ErrorAccumulator()
        self.chunksize = chunksize

        self.scan_groups = ScanGroupAssembler(self.errors)
        self.first_hits = FirstHitTracker(self.protein_order)
        self.spec_id_to_index = {}
        self.column_map = None
        self.flags = ResultFileFlags()
        self.header = []

    def read_header(self):
        if not os.path.isfile(self.results_tsv):
            raise ResultsFileError("File not found: %s" % self.results_tsv)

        try:
            header = pd.read_csv(self.results_tsv, sep="\t", nrows=0, quoting=csv.QUOTE_NONE)
        except pd.errors.EmptyDataError:
            raise ResultsFileError("File is empty: %s" % self.results_tsv)

        self.header = header.columns.tolist()
        self.column_map = build_column_map(self.header)
        self.flags = ResultFileFlags.from_column_map(self.column_map)

        return self.flags

    def _on_bad_line(self, fields):
        self.errors.record_error("Line has %d columns instead of %d: %s" % (len(fields), len(self.header), "\t".join(fields)[:200]))
        return None

    def _value(self, row, key):
        column = self.column_map.get(key)
        if column is None:
            return ""
        value = row.get(column)
        if value is None or pd.isna(value):
            return ""
        return str(value).strip()

    def _score(self, row, key):
        text = self._value(row, key)
        try:
            return text, float(text)
        except ValueError:
            raise MalformedRecordError("%s '%s' is not a number" % (self.column_map[key], text))

    def _mass_errors(self, row, charge_num, precursor_mz_text, peptide_mass):
        """Returns the DelM and DelM_PPM text of a result."""
        if "pm_error_ppm" in self.column_map:
            delm_ppm_text = self._value(row, "pm_error_ppm")
            delm_text = ""
        else:
            delm_ppm_text = ""
            delm_text = self._value(row, "pm_error_da")

        precursor_error_da = float_safe(delm_text)

        try:
            precursor_mz = float(precursor_mz_text)
        except ValueError:
            precursor_mz = None

        if delm_ppm_text != "" and precursor_mz is not None:
            try:
                ppm = float(delm_ppm_text)
            except ValueError:
                ppm = None

            if ppm is not None:
                tolerance = self.precursor_tolerance
                if tolerance.is_ppm and (ppm < -tolerance.left * PRECURSOR_TOLERANCE_FACTOR or ppm > tolerance.right * PRECURSOR_TOLERANCE_FACTOR):
                    self.errors.record_warning("Precursor mass error computed by MS-GF+ is 1.5-fold larger than search tolerance: %s vs. %s ppm" % (delm_ppm_text, tolerance.right))
                    precursor_error_da = convolute_mass(precursor_mz, charge_num, 0) - peptide_mass
                    delm_ppm_text = ""
                else:
                    precursor_error_da = ppm_to_mass(ppm, peptide_mass)
                    delm_text = mass_error_to_string(precursor_error_da)

        if delm_ppm_text == "" and precursor_mz is not None:
            corrected_ppm = compute_delm_corrected_ppm(precursor_error_da, convolute_mass(precursor_mz, charge_num, 0), peptide_mass, True)
            delm_ppm_text = dbl_to_string(corrected_ppm, 5, 0.00005)

            if delm_text == "":
                delm_text = mass_error_to_string(ppm_to_mass(corrected_ppm, peptide_mass))

        return delm_text, delm_ppm_text

    def parse_row(self, row) -> List[SearchResult]:
        """
        Parse one line of the results file.

        Raises UnresolvedModMassError for peptides with mod masses missing from the
        catalog and MalformedRecordError for lines that cannot be used.
        """
        missing = [column for column, value in row.items() if value is None or pd.isna(value)]
        if missing:
            raise MalformedRecordError("Line has %d columns instead of %d" % (len(row) - len(missing), len(row)))

        scan = self._value(row, "scan")
        peptide = self._value(row, "peptide")
        charge = self._value(row, "charge")

        if scan == "" or peptide == "":
            raise MalformedRecordError("Scan or Peptide is empty")

        try:
            charge_num = int(charge)
        except ValueError:
            raise MalformedRecordError("Charge '%s' is not an integer" % charge)

        first_protein, protein_info = split_protein_list(self._value(row, "protein"))
        if protein_info:
            prefix, suffix = protein_info[first_protein]
            peptide = add_update_prefix_suffix(peptide, prefix, suffix)

        annotated = rewrite_peptide(replace_terminus(peptide), self.catalog, self.flags.is_msgfplus)
        if not annotated.is_fully_resolved:
            raise UnresolvedModMassError("Unrecognized mod mass %s in peptide %s, scan %s" % (
                ", ".join(annotated.unresolved) or "text", peptide, scan))

        try:
            peptide_mass = compute_peptide_mass(annotated.peptide, annotated.total_mod_mass, self.custom_residue_masses)
        except ValueError as e:
            raise MalformedRecordError(str(e))

        precursor_mz = self._value(row, "precursor_mz")
        delm, delm_ppm = self._mass_errors(row, charge_num, precursor_mz, peptide_mass)

        if self.flags.include_fdr_and_pepfdr:
            qvalue, pep_qvalue = self._value(row, "qvalue"), self._value(row, "pep_qvalue")
        elif self.flags.include_efdr:
            qvalue, pep_qvalue = self._value(row, "efdr"), ""
        else:
            qvalue, pep_qvalue = "", ""

        spec_evalue, spec_evalue_num = self._score(row, "spec_evalue")
        evalue, evalue_num = self._score(row, "evalue")

        result = SearchResult(scan=scan,
                              scan_num=int_safe(scan, 0),
                              frag_method=self._value(row, "frag_method"),
                              spec_index=self._value(row, "spec_index"),
                              charge=charge,
                              charge_num=charge_num,
                              precursor_mz=precursor_mz,
                              delm=delm,
                              delm_ppm=delm_ppm,
                              mh=dbl_to_string(convolute_mass(peptide_mass, 0, 1), 6),
                              peptide=annotated.peptide,
                              protein=first_protein,
                              ntt=str(compute_cleavage_state(annotated.peptide)),
                              de_novo_score=self._value(row, "de_novo_score"),
                              msgf_score=self._value(row, "msgf_score"),
                              spec_evalue=spec_evalue,
                              spec_evalue_num=spec_evalue_num,
                              evalue=evalue,
                              evalue_num=evalue_num,
                              qvalue=qvalue,
                              qvalue_num=float_safe(qvalue),
                              pep_qvalue=pep_qvalue,
                              isotope_error=self._value(row, "isotope_error"),
                              ims_scan=self._value(row, "ims_scan"),
                              ims_drift_time=self._value(row, "ims_drift_time"),
                              mods=annotated.mods)

        results = []
        for member in self.scan_groups.expand(result):
            member.spec_index = normalize_spec_index(member.spec_index, self.spec_id_to_index)

            if not protein_info:
                results.append(member)
                continue

            for protein_name, (prefix, suffix) in protein_info.items():
                protein_peptide = add_update_prefix_suffix(annotated.peptide, prefix, suffix)
                results.append(member.copy(protein=protein_name,
                                           peptide=protein_peptide,
                                           ntt=str(compute_cleavage_state(protein_peptide))))

        return results

    def read_chunks(self):
        # object dtype keeps the fields as read; fields missing from short lines are None
        return pd.read_csv(self.results_tsv, sep="\t", dtype=object, keep_default_na=False,
                           quoting=csv.QUOTE_NONE, engine="python", on_bad_lines=self._on_bad_line,
                           chunksize=self.chunksize)

    def parse(self, evalue_threshold=SYNOPSIS_EVALUE_THRESHOLD, spec_evalue_threshold=SYNOPSIS_SPEC_EVALUE_THRESHOLD):
        """
        Returns the prefiltered synopsis and first hits results.
        """
        if self.column_map is None:
            self.read_header()

        syn_prefiltered = []
        fht_prefiltered = []
        line_number = 1

        for chunk in self.read_chunks():
            for row in chunk.to_dict("records"):
                line_number += 1
                try:
                    line_results = self.parse_row(row)
                except UnresolvedModMassError as e:
                    self.errors.record_numeric_mod_error(str(e))
                    continue
                except ValueError as e:
                    self.errors.record_error("Error parsing line %d: %s" % (line_number, e))
                    continue

                if len(line_results) == 0:
                    continue

                if passes_syn_filter(line_results[0], evalue_threshold, spec_evalue_threshold):
                    syn_prefiltered.extend(line_results)

                if self.first_hits.consider(line_results):
                    fht_prefiltered.extend(r.copy() for r in line_results)

        timestamped_echo("Info: Parsed %d lines from %s." % (line_number - 1, os.path.basename(self.results_tsv)))

        return syn_prefiltered, fht_prefiltered


def create_synopsis(syn_prefiltered, evalue_threshold=SYNOPSIS_EVALUE_THRESHOLD, spec_evalue_threshold=SYNOPSIS_SPEC_EVALUE_THRESHOLD):
    filtered = []
    for scan_results in results_by_scan(syn_prefiltered):
        store_syn_matches(scan_results, filtered, evalue_threshold, spec_evalue_threshold)

    return sort_results(filtered)


def create_first_hits(fht_prefiltered, first_hits: FirstHitTracker, protein_order=None):
    first_hits.update_proteins(fht_prefiltered)

    filtered = []
    for scan_results in results_by_scan(fht_prefiltered):
        store_top_fht_match(scan_results, filtered, protein_order)

    return sort_results(filtered)


def results_to_dataframe(results, flags: ResultFileFlags) -> pd.DataFrame:
    rows = []
    for result_id, result in enumerate(results, start=1):
        row = [str(result_id), result.scan, result.frag_method, result.spec_index, result.charge,
               result.precursor_mz, result.delm, result.delm_ppm, result.mh, result.peptide, result.protein,
               result.ntt, result.de_novo_score, result.msgf_score, result.spec_evalue, str(result.rank),
               result.evalue]

        if flags.include_fdr_and_pepfdr:
            row += [trim_zero_if_not_first_id(result_id, result.qvalue),
                    trim_zero_if_not_first_id(result_id, result.pep_qvalue)]
        elif flags.include_efdr:
            row += [trim_zero_if_not_first_id(result_id, result.qvalue), "1"]

        if flags.is_msgfplus:
            row.append(result.isotope_error)

        if flags.include_ims_fields:
            row += [result.ims_scan, result.ims_drift_time]

        rows.append(row)

    return pd.DataFrame(rows, columns=output_columns(flags))


def write_results(results, flags: ResultFileFlags, outfile: str):
    results_to_dataframe(results, flags).to_csv(outfile, sep="\t", index=False)
    timestamped_echo("Info: Stored %d results in %s." % (len(results), outfile))


def write_mod_defs(catalog, outfile: str):
    catalog.to_dataframe().to_csv(outfile, sep="\t", index=False)
    timestamped_echo("Info: Stored %d modification definitions in %s." % (len(catalog), outfile))


def count_mod_occurrences(syn_results):
    """
    Count the modifications of the synopsis results. A modified sequence is counted once
    per scan and charge, not once per protein.
    """
    counts = Counter()
    counted = set()
    for result in syn_results:
        key = (result.scan, result.charge, split_prefix_suffix(result.peptide)[1])
        if key in counted:
            continue
        counted.add(key)
        counts.update(result.mods)
    return counts


def write_mod_summary(catalog, occurrence_counts, outfile: str):
    catalog.to_dataframe(occurrence_counts).to_csv(outfile, sep="\t", index=False)
    timestamped_echo("Info: Stored modification summary in %s." % outfile)


def process_results(
    results_tsv: str,
    param_file: str,
    fasta_file: Optional[str] = None,
    outdir: Optional[str] = None,
    evalue_threshold: float = SYNOPSIS_EVALUE_THRESHOLD,
    spec_evalue_threshold: float = SYNOPSIS_SPEC_EVALUE_THRESHOLD,
    create_syn: bool = True,
    create_fht: bool = True,
    mod_summary: bool = True,
    chunksize: int = 100_000,
) -> Dict[str, str]:
    """
    Create the synopsis and first hits files of an MS-GF+ results file.

    Returns the paths of the files written, keyed by 'syn', 'fht', 'scan_groups' and 'mod_summary'.
    """
    base_name = basename_wo_ext(results_tsv)
    if outdir is None:
        outdir = os.path.dirname(os.path.abspath(results_tsv))
    os.makedirs(outdir, exist_ok=True)

    timestamped_echo("Info: Processing %s." % results_tsv)

    catalog = extract_mods_from_param_file(param_file)
    timestamped_echo("Info: Loaded %d modification definitions from %s." % (len(catalog), os.path.basename(param_file)))
    precursor_tolerance = extract_precursor_tolerance(param_file)

    protein_order = read_protein_order(fasta_file) if fasta_file else {}

    errors = ErrorAccumulator()
    parser = MSGFPlusResultsParser(results_tsv, catalog, precursor_tolerance, protein_order, errors, chunksize)
    flags = parser.read_header()
    syn_prefiltered, fht_prefiltered = parser.parse(evalue_threshold, spec_evalue_threshold)

    outputs = {}

    syn_results = []
    if create_syn or mod_summary:
        syn_results = create_synopsis(syn_prefiltered, evalue_threshold, spec_evalue_threshold)

    if create_syn:
        outputs['syn'] = os.path.join(outdir, base_name + SYNOPSIS_FILE_SUFFIX)
        write_results(syn_results, flags, outputs['syn'])

    if create_fht:
        outputs['fht'] = os.path.join(outdir, base_name + FIRST_HITS_FILE_SUFFIX)
        write_results(create_first_hits(fht_prefiltered, parser.first_hits, protein_order), flags, outputs['fht'])

    scan_group_file = os.path.join(outdir, base_name + SCAN_GROUP_FILE_SUFFIX)
    if parser.scan_groups.write(scan_group_file):
        outputs['scan_groups'] = scan_group_file

    if mod_summary:
        outputs['mod_summary'] = os.path.join(outdir, base_name + MOD_SUMMARY_FILE_SUFFIX)
        write_mod_summary(catalog, count_mod_occurrences(syn_results), outputs['mod_summary'])

    errors.report()

    return outputs
