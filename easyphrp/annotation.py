import re
import sys
from typing import NamedTuple, Optional, Tuple

from .modifications import (ModClass, ModificationEntry, STATIC_MOD_SYMBOL,
                            N_TERMINAL_PEPTIDE_SYMBOL, C_TERMINAL_PEPTIDE_SYMBOL,
                            N_TERMINAL_PROTEIN_SYMBOL, C_TERMINAL_PROTEIN_SYMBOL)


MOD_MASS_TOLERANCE = 0.25
MASS_TIE_EPSILON = sys.float_info.epsilon

N_TERMINUS_SYMBOL_MSGFPLUS = "_."
C_TERMINUS_SYMBOL_MSGFPLUS = "._"
PROTEIN_TERMINUS_SYMBOL = "-"
PROTEIN_TERMINUS_RESIDUES = (PROTEIN_TERMINUS_SYMBOL, "_")

# residue passed to the matcher for the N-terminal mod cluster
NO_RESIDUE = "-"

MOD_MASS_RE = re.compile(r"[+-][0-9.]+")
MOD_MASS_RUN_RE = re.compile(r"(?:[+-][0-9.]+)+")
PEPTIDE_TOKEN_RE = re.compile(r"([A-Za-z])|([^A-Za-z]+)")
NUMERIC_TEXT_RE = re.compile(r"[0-9]")


class WalkState:
    N_TERMINAL_CANDIDATE = "NTerminalCandidate"
    INTERNAL_RESIDUE = "InternalResidue"
    C_TERMINAL_CANDIDATE = "CTerminalCandidate"


class MassMatch(NamedTuple):
    """Resolution of one mod mass token; one (text, entry) pair per signed sub-number."""
    matches: Tuple[Tuple[str, Optional[ModificationEntry]], ...]

    @property
    def resolved(self):
        return any(entry is not None for _, entry in self.matches)

    @property
    def unresolved(self):
        return [text for text, entry in self.matches if entry is None]

    @property
    def entries(self):
        return tuple(entry for _, entry in self.matches if entry is not None)

    @property
    def mass_found(self):
        return sum(entry.mass for entry in self.entries)

    @property
    def is_static_match(self):
        return any(entry is not None and entry.is_static for _, entry in self.matches)

    def symbol_text(self, suppress_static=False):
        text = ""
        for token, entry in self.matches:
            if entry is None:
                text += token
            elif entry.is_static and suppress_static:
                continue
            else:
                text += entry.symbol
        return text


class AnnotatedPeptide(NamedTuple):
    prefix: str
    sequence: str
    suffix: str
    total_mod_mass: float = 0.0
    unresolved: Tuple[str, ...] = ()
    mods: Tuple[ModificationEntry, ...] = ()

    @property
    def peptide(self):
        if self.prefix == "" and self.suffix == "":
            return self.sequence
        return "%s.%s.%s" % (self.prefix, self.sequence, self.suffix)

    @property
    def is_fully_resolved(self):
        return len(self.unresolved) == 0 and NUMERIC_TEXT_RE.search(self.sequence) is None


def _is_eligible(entry, n_terminal, possible_c_terminal):
    if n_terminal:
        return entry.mod_class in ModClass.NTERM_DYNAMIC
    if not possible_c_terminal:
        return entry.mod_class not in ModClass.CTERM_DYNAMIC
    return True


def _prefer_challenger(best, challenger, residue):
    # a static placeholder must not shadow a dynamic mod on the residue being annotated
    return (best.symbol == STATIC_MOD_SYMBOL and
            challenger.symbol != STATIC_MOD_SYMBOL and
            residue not in best.residues and
            residue in challenger.residues)


def best_catalog_match(residue, mod_mass, n_terminal, possible_c_terminal, catalog):
    """
    Closest eligible catalog entry within MOD_MASS_TOLERANCE, or None.
    On equal mass differences the first entry in catalog order is kept unless
    _prefer_challenger applies.
    """
    best = None
    best_diff = 0.0

    for entry in catalog:
        if not _is_eligible(entry, n_terminal, possible_c_terminal):
            continue

        diff = abs(entry.mass - mod_mass)
        if not diff < MOD_MASS_TOLERANCE:
            continue

        if best is None:
            best, best_diff = entry, diff
        elif abs(diff - best_diff) < MASS_TIE_EPSILON:
            if _prefer_challenger(best, entry, residue):
                best, best_diff = entry, diff
        elif diff < best_diff:
            best, best_diff = entry, diff

    return best


def relaxation_ladder(n_terminal, possible_c_terminal):
    """Contexts to try in order: the strict one, then at most one relaxed one."""
    contexts = [(n_terminal, possible_c_terminal)]
    if n_terminal:
        contexts.append((False, possible_c_terminal))
    elif not possible_c_terminal:
        contexts.append((False, True))
    return contexts


def find_mod_entry(residue, mod_mass, n_terminal, possible_c_terminal, catalog):
    for context_n_terminal, context_c_terminal in relaxation_ladder(n_terminal, possible_c_terminal):
        entry = best_catalog_match(residue, mod_mass, context_n_terminal, context_c_terminal, catalog)
        if entry is not None:
            return entry
    return None


def resolve_mod_masses(residue, mass_token, n_terminal, possible_c_terminal, catalog) -> MassMatch:
    """
    Match each signed number in mass_token (e.g. '+79.9663+14.0157') to the catalog.
    Numbers without a match keep their text.
    """
    matches = []
    for sub_match in MOD_MASS_RE.finditer(mass_token):
        token = sub_match.group(0)
        try:
            mod_mass = float(token)
        except ValueError:
            matches.append((token, None))
            continue
        matches.append((token, find_mod_entry(residue, mod_mass, n_terminal, possible_c_terminal, catalog)))

    return MassMatch(tuple(matches))


def split_prefix_suffix(peptide: str):
    """Return (prefix residue, primary sequence, suffix residue) for peptides like R.PEPTIDEK.L"""
    if len(peptide) >= 4 and peptide[1] == "." and peptide[-2] == ".":
        return peptide[0], peptide[2:-2], peptide[-1]
    return "", peptide, ""


def clean_sequence(peptide: str) -> str:
    _, primary, _ = split_prefix_suffix(peptide)
    return "".join(c for c in primary if "A" <= c <= "Z")


def replace_terminus(peptide: str) -> str:
    """Replace the MS-GF+ terminus markers _. and ._ with -. and .-"""
    if peptide.startswith(N_TERMINUS_SYMBOL_MSGFPLUS):
        peptide = PROTEIN_TERMINUS_SYMBOL + "." + peptide[2:]
    if peptide.endswith(C_TERMINUS_SYMBOL_MSGFPLUS):
        peptide = peptide[:-2] + "." + PROTEIN_TERMINUS_SYMBOL
    return peptide


def _out_of_band_static_entries(residue, is_first, is_last, prefix, suffix, catalog):
    entries = []
    for entry in catalog:
        if not entry.is_static:
            continue
        if entry.targets(residue):
            entries.append(entry)
        elif is_first and entry.residues == N_TERMINAL_PEPTIDE_SYMBOL:
            entries.append(entry)
        elif is_first and entry.residues == N_TERMINAL_PROTEIN_SYMBOL and prefix in PROTEIN_TERMINUS_RESIDUES:
            entries.append(entry)
        elif is_last and entry.residues == C_TERMINAL_PEPTIDE_SYMBOL:
            entries.append(entry)
        elif is_last and entry.residues == C_TERMINAL_PROTEIN_SYMBOL and suffix in PROTEIN_TERMINUS_RESIDUES:
            entries.append(entry)
    return entries


def _rewrite_mod_run(run, residue, n_terminal, possible_c_terminal, catalog, is_msgfplus):
    """Replace every numeric mod mass run inside run; returns (text, matched entries, unresolved)."""
    text = ""
    entries = []
    unresolved = []
    last = 0

    for run_match in MOD_MASS_RUN_RE.finditer(run):
        text += run[last:run_match.start()]
        mass_match = resolve_mod_masses(residue, run_match.group(0), n_terminal, possible_c_terminal, catalog)
        if mass_match.resolved:
            text += mass_match.symbol_text(suppress_static=is_msgfplus and mass_match.is_static_match)
            entries.extend(mass_match.entries)
        else:
            text += run_match.group(0)
        unresolved.extend(mass_match.unresolved)
        last = run_match.end()

    text += run[last:]
    return text, entries, unresolved


def _relocate_n_terminal_symbols(sequence):
    # #MDHTPQSQLK -> M#DHTPQSQLK
    for index, c in enumerate(sequence):
        if c.isalpha():
            if index == 0:
                return sequence
            return c + sequence[:index] + sequence[index + 1:]
    return sequence


def rewrite_peptide(peptide: str, catalog, is_msgfplus: bool) -> AnnotatedPeptide:
    """
    Replace numeric mod masses in an MS-GF+ / MSGFDB peptide with mod symbols.

    MS-GF+ lists static mod masses inline; their symbols are dropped but their mass
    is counted. MSGFDB omits static mods, so their masses are added per residue.
    N-terminal symbols end up after the first residue.
    """
    prefix, primary, suffix = split_prefix_suffix(peptide)

    tokens = [(m.group(1), m.group(2)) for m in PEPTIDE_TOKEN_RE.finditer(primary)]
    residue_positions = [i for i, (residue, _) in enumerate(tokens) if residue]
    first_residue = residue_positions[0] if residue_positions else -1
    last_residue = residue_positions[-1] if residue_positions else -1

    state = WalkState.N_TERMINAL_CANDIDATE
    current_residue = NO_RESIDUE
    mods = []
    unresolved = []
    rewritten = ""

    for index, (residue, run) in enumerate(tokens):
        if residue:
            current_residue = residue
            state = WalkState.C_TERMINAL_CANDIDATE if index == last_residue else WalkState.INTERNAL_RESIDUE
            if not is_msgfplus:
                mods.extend(_out_of_band_static_entries(residue, index == first_residue, index == last_residue,
                                                        prefix, suffix, catalog))
            rewritten += residue
            continue

        n_terminal = state == WalkState.N_TERMINAL_CANDIDATE
        possible_c_terminal = state == WalkState.C_TERMINAL_CANDIDATE
        text, run_mods, run_unresolved = _rewrite_mod_run(run, current_residue, n_terminal, possible_c_terminal,
                                                          catalog, is_msgfplus)
        rewritten += text
        mods.extend(run_mods)
        unresolved.extend(run_unresolved)

    return AnnotatedPeptide(prefix=prefix,
                            sequence=_relocate_n_terminal_symbols(rewritten),
                            suffix=suffix,
                            total_mod_mass=sum(entry.mass for entry in mods),
                            unresolved=tuple(unresolved),
                            mods=tuple(mods))
