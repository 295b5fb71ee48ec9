import os
import re
from collections import OrderedDict

import click
from Bio import SeqIO

from .annotation import split_prefix_suffix, PROTEIN_TERMINUS_RESIDUES
from .util import timestamped_echo


# MS-GF+ protein lists look like: Prot1(pre=K,post=A);Prot2(pre=R,post=-)
PROTEIN_AND_TERM_SYMBOLS_RE = re.compile(r"([^;]+)\(pre=(.),post=(.)\)")

TRYPSIN_CLEAVAGE_RESIDUES = "KR"
TRYPSIN_EXCEPTION_RESIDUES = "P"


def truncate_protein_name(protein_name_and_description):
    index = protein_name_and_description.find(" ")
    if index > 0:
        return protein_name_and_description[:index]
    return protein_name_and_description


def split_protein_list(protein_list):
    """
    Split an MS-GF+ protein list.

    Returns the first protein name and an ordered mapping of protein name to
    (prefix residue, suffix residue). The mapping is empty when the list has no
    pre/post annotations.
    """
    protein_info = OrderedDict()

    for match in PROTEIN_AND_TERM_SYMBOLS_RE.finditer(protein_list):
        protein_name = truncate_protein_name(match.group(1))
        if protein_name not in protein_info:
            protein_info[protein_name] = (match.group(2), match.group(3))

    if len(protein_info) == 0:
        return truncate_protein_name(protein_list), protein_info

    return next(iter(protein_info)), protein_info


def add_update_prefix_suffix(peptide, prefix_residue, suffix_residue):
    """Set the prefix and suffix residues of a peptide, adding them when absent."""
    if "." not in peptide:
        return "%s.%s.%s" % (prefix_residue, peptide, suffix_residue)

    if len(peptide) >= 2:
        if peptide[1] == ".":
            peptide_new = prefix_residue + "." + peptide[2:]
        elif peptide[0] == ".":
            peptide_new = prefix_residue + peptide
        else:
            peptide_new = prefix_residue + "." + peptide
    else:
        peptide_new = peptide

    if len(peptide_new) >= 4:
        if peptide_new[-2] == ".":
            peptide_new = peptide_new[:-2] + "." + suffix_residue
        elif peptide_new[-1] == ".":
            peptide_new = peptide_new + suffix_residue
        else:
            peptide_new = peptide_new + "." + suffix_residue

    return peptide_new


def read_protein_order(fasta_file):
    """
    Map each protein accession to the 0-based position of its first appearance in the FASTA file.
    """
    if not os.path.isfile(fasta_file):
        raise click.ClickException("Error caching protein names: FASTA file not found: %s" % fasta_file)

    protein_order = {}
    for record in SeqIO.parse(fasta_file, "fasta"):
        if record.id not in protein_order:
            protein_order[record.id] = len(protein_order)

    timestamped_echo("Info: Cached %d proteins from %s." % (len(protein_order), os.path.basename(fasta_file)))

    return protein_order


def compute_cleavage_state(peptide):
    """
    Number of tryptic termini (0, 1 or 2) of a peptide with prefix and suffix residues.
    Protein termini count as tryptic.
    """
    prefix, primary, suffix = split_prefix_suffix(peptide)
    sequence = "".join(c for c in primary if "A" <= c <= "Z")
    if sequence == "":
        return 0

    ntt = 0

    if prefix in PROTEIN_TERMINUS_RESIDUES:
        ntt += 1
    elif prefix in TRYPSIN_CLEAVAGE_RESIDUES and prefix != "" and sequence[0] not in TRYPSIN_EXCEPTION_RESIDUES:
        ntt += 1

    if suffix in PROTEIN_TERMINUS_RESIDUES:
        ntt += 1
    elif sequence[-1] in TRYPSIN_CLEAVAGE_RESIDUES and suffix != "" and suffix not in TRYPSIN_EXCEPTION_RESIDUES:
        ntt += 1

    return ntt
