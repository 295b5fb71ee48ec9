import sys

import pandas as pd

from .annotation import clean_sequence, split_prefix_suffix


SYNOPSIS_EVALUE_THRESHOLD = 0.75
SYNOPSIS_SPEC_EVALUE_THRESHOLD = 5e-7
SYNOPSIS_QVALUE_THRESHOLD = 0.01

# smallest positive double; scores only tie when they are equal
SCORE_TIE_EPSILON = 5e-324

UNKNOWN_PROTEIN_RANK = sys.maxsize


SCAN_CHARGE_SORT_COLUMNS = ['scan_num', 'charge_num', 'spec_evalue_num', 'peptide', 'protein']
OUTPUT_SORT_COLUMNS = ['spec_evalue_num', 'scan_num', 'charge_num', 'peptide', 'protein']


def _sorted_keys(results, columns):
    keys = pd.DataFrame([[getattr(r, c) for c in columns] for r in results], columns=columns)
    return keys.sort_values(columns, kind='mergesort')


def sort_results(results, columns=OUTPUT_SORT_COLUMNS):
    if len(results) == 0:
        return []
    return [results[i] for i in _sorted_keys(results, columns).index]


def results_by_scan(results):
    """Sort results by scan, charge and SpecEValue and yield the results of each scan."""
    if len(results) == 0:
        return

    keys = _sorted_keys(results, SCAN_CHARGE_SORT_COLUMNS)
    for _, scan_keys in keys.groupby('scan_num', sort=False):
        yield [results[i] for i in scan_keys.index]


def assign_ranks(scan_results):
    """
    Dense rank by ascending SpecEValue across all charges of one scan; equal scores share a rank.
    Ranks are stored on the results.
    """
    current_rank = 0
    last_value = 0.0

    for result in sorted(scan_results, key=lambda r: r.spec_evalue_num):
        if current_rank == 0 or abs(result.spec_evalue_num - last_value) > SCORE_TIE_EPSILON:
            current_rank += 1
            last_value = result.spec_evalue_num
        result.rank = current_rank

    return scan_results


def passes_syn_filter(result, evalue_threshold=SYNOPSIS_EVALUE_THRESHOLD, spec_evalue_threshold=SYNOPSIS_SPEC_EVALUE_THRESHOLD):
    return (result.evalue_num <= evalue_threshold or
            result.spec_evalue_num <= spec_evalue_threshold or
            0 < result.qvalue_num < SYNOPSIS_QVALUE_THRESHOLD)


def store_syn_matches(scan_results, filtered_results, evalue_threshold=SYNOPSIS_EVALUE_THRESHOLD, spec_evalue_threshold=SYNOPSIS_SPEC_EVALUE_THRESHOLD):
    """
    Rank the results of one scan and append those passing the synopsis filter to filtered_results.

    An N-terminal dynamic mod that can also sit on the first residue makes MS-GF+ report
    the same PSM twice (R.S+229.163IGLPDVHSGK.L and R.+229.163SIGLPDVHSGK.L); only the
    first copy is kept.
    """
    assign_ranks(scan_results)

    result_keys = set()
    for result in scan_results:
        if not passes_syn_filter(result, evalue_threshold, spec_evalue_threshold):
            continue

        result_key = "%s_%s_%s_%s" % (result.peptide, result.protein, result.mh, result.spec_evalue)
        if result_key in result_keys:
            continue

        result_keys.add(result_key)
        filtered_results.append(result)

    return filtered_results


def pick_best_protein(current_name, current_rank, candidate_name, protein_order):
    """
    Prefer the protein listed first in the FASTA file.

    protein_order maps accession to its 0-based FASTA position; accessions missing from it
    (e.g. reversed decoys) never replace the current protein.
    """
    candidate_rank = protein_order.get(candidate_name) if protein_order else None
    if candidate_rank is not None and candidate_rank < current_rank:
        return candidate_name, candidate_rank
    return current_name, current_rank


def store_top_fht_match(scan_results, filtered_results, protein_order=None):
    """
    Rank the results of one scan and append the first result of each charge to filtered_results.

    scan_results must be sorted by charge and SpecEValue. The stored result uses the protein
    that occurs first in the FASTA file among results of that charge with the same clean sequence.
    """
    assign_ranks(scan_results)

    if len(scan_results) == 0:
        return filtered_results

    current = scan_results[0].copy()
    current_rank = UNKNOWN_PROTEIN_RANK
    current_peptide = clean_sequence(current.peptide)

    for result in scan_results:
        if result.charge_num != current.charge_num:
            filtered_results.append(current)
            current = result.copy()
            current_rank = UNKNOWN_PROTEIN_RANK
            current_peptide = clean_sequence(current.peptide)

        if clean_sequence(result.peptide) == current_peptide:
            current.protein, current_rank = pick_best_protein(current.protein, current_rank, result.protein, protein_order)

    filtered_results.append(current)

    return filtered_results


class FirstHitInfo:
    def __init__(self, peptide, protein_name, protein_rank):
        self.prefix, self.primary_sequence, self.suffix = split_prefix_suffix(peptide)
        self.clean_sequence = clean_sequence(peptide)
        self.protein_name = protein_name
        self.protein_rank = protein_rank

    @property
    def peptide(self):
        return "%s.%s.%s" % (self.prefix, self.primary_sequence, self.suffix)

    def update_prefix_and_suffix(self, prefix, suffix):
        self.prefix = prefix
        self.suffix = suffix


class FirstHitTracker:
    """
    Tracks the first result seen for each scan and charge while reading the results file.

    Later lines for a scan/charge are not kept, but when they report the same clean
    sequence for a protein listed earlier in the FASTA file, the tracked protein is updated.
    """

    def __init__(self, protein_order=None):
        self.protein_order = protein_order or {}
        self.first_hits = {}

    @staticmethod
    def scan_charge_key(result):
        return "%s_%s" % (result.scan, result.charge)

    def consider(self, line_results):
        """Returns True when line_results is the first line for its scan and charge."""
        if len(line_results) == 0:
            return False

        first = line_results[0]
        key = self.scan_charge_key(first)
        first_hit = self.first_hits.get(key)

        if first_hit is None:
            first_hit = FirstHitInfo(first.peptide, first.protein,
                                     self.protein_order.get(first.protein, UNKNOWN_PROTEIN_RANK))
            self.first_hits[key] = first_hit
            is_first = True
        else:
            is_first = False

        for result in line_results:
            if clean_sequence(result.peptide) != first_hit.clean_sequence:
                continue
            protein_name, protein_rank = pick_best_protein(first_hit.protein_name, first_hit.protein_rank,
                                                           result.protein, self.protein_order)
            if protein_rank < first_hit.protein_rank:
                first_hit.protein_name = protein_name
                first_hit.protein_rank = protein_rank
                prefix, _, suffix = split_prefix_suffix(result.peptide)
                first_hit.update_prefix_and_suffix(prefix, suffix)

        return is_first

    def update_proteins(self, results):
        """Replace the protein (and its prefix/suffix residues) of results with the tracked first-hit protein."""
        for result in results:
            first_hit = self.first_hits.get(self.scan_charge_key(result))
            if first_hit is None or result.protein == first_hit.protein_name:
                continue

            if clean_sequence(result.peptide) == first_hit.clean_sequence:
                _, primary, _ = split_prefix_suffix(result.peptide)
                result.peptide = "%s.%s.%s" % (first_hit.prefix, primary, first_hit.suffix)
                result.protein = first_hit.protein_name

        return results
