import os
import re
from typing import NamedTuple, Optional

import click
import pandas as pd
import pyopenms as po

from .util import timestamped_echo


STATIC_MOD_SYMBOL = '-'
UNKNOWN_MOD_SYMBOL = '?'
LAST_RESORT_MOD_SYMBOL = '_'
DEFAULT_MOD_SYMBOLS = "*#@$&!%~^`+="

N_TERMINAL_PEPTIDE_SYMBOL = '<'
C_TERMINAL_PEPTIDE_SYMBOL = '>'
N_TERMINAL_PROTEIN_SYMBOL = '['
C_TERMINAL_PROTEIN_SYMBOL = ']'
TERMINUS_RESIDUE_SYMBOLS = (N_TERMINAL_PEPTIDE_SYMBOL, C_TERMINAL_PEPTIDE_SYMBOL,
                            N_TERMINAL_PROTEIN_SYMBOL, C_TERMINAL_PROTEIN_SYMBOL)

# MS-GF+ recognizes HexNAc as a formula keyword
HEXNAC_MASS = 203.079376

PARAM_TAG_MOD_STATIC = "StaticMod"
PARAM_TAG_MOD_DYNAMIC = "DynamicMod"
PARAM_TAG_CUSTOM_AA = "CustomAA"
PRECURSOR_TOLERANCE_PARAM_NAMES = ("PrecursorMassTolerance", "PMTolerance")
COMMENT_CHAR = "#"


class ModificationCatalogError(click.ClickException):
    def __init__(self, message):
        super().__init__("Error loading modification definitions: %s" % message)


class ModClass:
    STATIC_RESIDUE = "StaticResidue"
    DYNAMIC_RESIDUE = "DynamicResidue"
    DYN_NTERM_PEPTIDE = "DynNTermPeptide"
    DYN_NTERM_PROTEIN = "DynNTermProtein"
    DYN_CTERM_PEPTIDE = "DynCTermPeptide"
    DYN_CTERM_PROTEIN = "DynCTermProtein"
    CUSTOM_AMINO_ACID = "CustomAminoAcid"

    NTERM_DYNAMIC = (DYN_NTERM_PEPTIDE, DYN_NTERM_PROTEIN)
    CTERM_DYNAMIC = (DYN_CTERM_PEPTIDE, DYN_CTERM_PROTEIN)


class ModificationEntry(NamedTuple):
    mass: float
    symbol: str
    residues: str
    mod_class: str
    name: str = ""
    mass_text: str = ""

    @property
    def is_static(self):
        return self.mod_class == ModClass.STATIC_RESIDUE

    @property
    def is_terminal_static(self):
        return self.is_static and self.residues in TERMINUS_RESIDUE_SYMBOLS

    def targets(self, residue):
        return residue in self.residues


class PrecursorTolerance(NamedTuple):
    left: float = 0.0
    right: float = 0.0
    is_ppm: bool = False


class ModificationCatalog:
    """
    Ordered list of the modifications searched by MS-GF+.

    Static mods carry the placeholder symbol '-'. Dynamic mods and custom amino acids
    get the next free symbol of DEFAULT_MOD_SYMBOLS; dynamic mods of the same class
    whose masses agree to three decimals share one symbol.
    """

    def __init__(self, entries=None):
        self.entries = []
        for entry in entries or []:
            self.entries.append(entry)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    def __getitem__(self, index):
        return self.entries[index]

    def _symbols_in_use(self):
        return {entry.symbol for entry in self.entries}

    def _next_symbol(self):
        used = self._symbols_in_use()
        for symbol in DEFAULT_MOD_SYMBOLS:
            if symbol not in used:
                return symbol
        if LAST_RESORT_MOD_SYMBOL not in used:
            return LAST_RESORT_MOD_SYMBOL
        return UNKNOWN_MOD_SYMBOL

    def lookup_symbol(self, mass, mod_class):
        if mod_class == ModClass.STATIC_RESIDUE:
            return STATIC_MOD_SYMBOL

        for entry in self.entries:
            if entry.mod_class == mod_class and round(entry.mass, 3) == round(mass, 3):
                return entry.symbol

        return self._next_symbol()

    def add(self, mass, residues, mod_class, name="", mass_text=""):
        entry = ModificationEntry(mass=float(mass),
                                  symbol=self.lookup_symbol(mass, mod_class),
                                  residues=residues,
                                  mod_class=mod_class,
                                  name=name,
                                  mass_text=mass_text or str(mass))
        self.entries.append(entry)
        return entry

    def static_entries_for(self, residue):
        return [entry for entry in self.entries if entry.is_static and entry.targets(residue)]

    @property
    def custom_residue_masses(self):
        return {entry.residues: entry.mass for entry in self.entries
                if entry.mod_class == ModClass.CUSTOM_AMINO_ACID and len(entry.residues) == 1}

    def to_dataframe(self, occurrence_counts=None):
        """
        Modification definitions as a table; with occurrence_counts (entry -> count) an
        Occurrence_Count column is added.
        """
        df = pd.DataFrame({'Modification_Symbol': [e.symbol for e in self.entries],
                           'Modification_Mass': ["%.6f" % e.mass for e in self.entries],
                           'Target_Residues': [e.residues for e in self.entries],
                           'Modification_Type': [e.mod_class for e in self.entries],
                           'Mass_Correction_Tag': [e.name for e in self.entries]},
                          columns=['Modification_Symbol', 'Modification_Mass', 'Target_Residues', 'Modification_Type', 'Mass_Correction_Tag'])

        if occurrence_counts is not None:
            df['Occurrence_Count'] = [occurrence_counts.get(e, 0) for e in self.entries]

        return df


def compute_formula_mass(formula: str) -> float:
    """
    Monoisotopic mass of an MS-GF+ empirical formula.

    Accepts C2H3N1O1, C+2H+3N+1O+1, H-1N-1O, C3H6N2O0S1 and the UniMod style H(2) C(2) O.
    """
    if formula.strip().lower() == "hexnac":
        return HEXNAC_MASS

    normalized = re.sub(r"([A-Z][a-z]?)\((-?\d+)\)", r"\1\2", formula)
    normalized = normalized.replace("+", "").replace(" ", "")
    # OpenMS rejects explicit zero counts
    normalized = re.sub(r"([A-Z][a-z]?)0(?![0-9])", "", normalized)

    try:
        return po.EmpiricalFormula(normalized).getMonoWeight()
    except Exception as e:
        raise ModificationCatalogError("Cannot compute the mass of empirical formula '%s': %s" % (formula, e))


def _trim_comment(value: str) -> str:
    comment_index = value.find(COMMENT_CHAR)
    if comment_index > 0:
        return value[:comment_index].strip()
    return value.strip()


def _parse_key_value(line: str):
    if "=" not in line:
        return line.strip(), ""
    key, value = line.split("=", 1)
    return key.strip(), _trim_comment(value)


def _find_mod_spec(line: str):
    """Return the mod spec text of a parameter file line, or an empty string."""
    for tag in (PARAM_TAG_MOD_STATIC, PARAM_TAG_MOD_DYNAMIC, PARAM_TAG_CUSTOM_AA):
        if line.lower().startswith(tag.lower()):
            _, value = _parse_key_value(line)
            if value == "" or value.lower() == "none":
                return ""
            return value

    # MSGFPlus_Mods.txt lines have no tag
    line_no_spaces = _trim_comment(line).replace(" ", "")
    if ",opt," in line_no_spaces or ",fix," in line_no_spaces or ",custom," in line_no_spaces:
        return line_no_spaces

    return ""


def parse_mod_spec(fields, unnamed_mod_id=0):
    """
    Parse one comma separated mod spec:
      mass or formula, residues, fix|opt|custom, position, name

    Custom amino acids use: formula, symbol, custom, unused, name

    Returns (mass, mass_text, residues, mod_class, name, unnamed_mod_id).
    """
    mass_text = fields[0].strip()
    try:
        mass = float(mass_text)
    except ValueError:
        mass = compute_formula_mass(mass_text)

    residues = fields[1].strip()
    mod_type = fields[2].strip().lower()

    if mod_type == "opt":
        mod_class = ModClass.DYNAMIC_RESIDUE
    elif mod_type == "fix":
        mod_class = ModClass.STATIC_RESIDUE
    elif mod_type == "custom":
        mod_class = ModClass.CUSTOM_AMINO_ACID
    else:
        timestamped_echo("Warning: Unrecognized mod type %s; should be 'opt', 'fix', or 'custom'; will assume 'opt'" % fields[2].strip())
        mod_class = ModClass.DYNAMIC_RESIDUE

    if mod_class != ModClass.CUSTOM_AMINO_ACID:
        position = fields[3].strip().lower().replace("-", "")
        terminal_positions = {"nterm": (N_TERMINAL_PEPTIDE_SYMBOL, ModClass.DYN_NTERM_PEPTIDE),
                              "cterm": (C_TERMINAL_PEPTIDE_SYMBOL, ModClass.DYN_CTERM_PEPTIDE),
                              "protnterm": (N_TERMINAL_PROTEIN_SYMBOL, ModClass.DYN_NTERM_PROTEIN),
                              "protcterm": (C_TERMINAL_PROTEIN_SYMBOL, ModClass.DYN_CTERM_PROTEIN)}

        if position in terminal_positions:
            terminus_symbol, dynamic_class = terminal_positions[position]
            # static terminal mods are only supported when they apply to any residue
            if mod_class == ModClass.STATIC_RESIDUE and residues != "*":
                mod_class = ModClass.DYNAMIC_RESIDUE
            residues = terminus_symbol
            if mod_class == ModClass.DYNAMIC_RESIDUE:
                mod_class = dynamic_class
        elif position != "any":
            timestamped_echo("Warning: Unrecognized mod position %s; should be 'any', 'N-term', 'C-term', 'Prot-N-term', or 'Prot-C-term'" % fields[3].strip())

    name = fields[4].strip()
    if name == "":
        unnamed_mod_id += 1
        name = "UnnamedMod%d" % unnamed_mod_id

    return mass, mass_text, residues, mod_class, name, unnamed_mod_id


def extract_mods_from_param_file(param_file: str) -> ModificationCatalog:
    """
    Build the modification catalog from an MS-GF+ parameter file or MSGFPlus_Mods.txt file.
    """
    if param_file is None or not os.path.isfile(param_file):
        raise ModificationCatalogError("Parameter file not found: %s" % param_file)

    catalog = ModificationCatalog()
    unnamed_mod_id = 0

    try:
        with open(param_file, 'r') as fh:
            lines = fh.readlines()
    except OSError as e:
        raise ModificationCatalogError("Cannot read parameter file %s: %s" % (param_file, e))

    for line in lines:
        trimmed_line = line.strip()
        if trimmed_line == "" or trimmed_line.startswith(COMMENT_CHAR):
            continue

        mod_spec = _find_mod_spec(trimmed_line)
        if mod_spec == "":
            continue

        if "=" in mod_spec:
            raise ModificationCatalogError("Mod spec '%s' contains an unknown keyword before the equals sign; see parameter file %s" % (mod_spec, os.path.basename(param_file)))

        fields = mod_spec.split(",")
        if len(fields) < 5:
            continue

        try:
            mass, mass_text, residues, mod_class, name, unnamed_mod_id = parse_mod_spec(fields, unnamed_mod_id)
        except IndexError as e:
            raise ModificationCatalogError("Cannot parse mod spec '%s': %s" % (mod_spec, e))

        catalog.add(mass, residues, mod_class, name=name, mass_text=mass_text)

    return catalog


def parse_parent_mass_tolerance(tolerance_text: str):
    """Parse '20ppm' or '0.5Da'; returns (tolerance, is_ppm) or None."""
    text = tolerance_text.strip().lower()
    if text.endswith("da"):
        value, is_ppm = text[:-2], False
    elif text.endswith("ppm"):
        value, is_ppm = text[:-3], True
    else:
        return None

    try:
        return float(value), is_ppm
    except ValueError:
        return None


def extract_precursor_tolerance(param_file: Optional[str]) -> PrecursorTolerance:
    """
    Read PrecursorMassTolerance (or PMTolerance) from the parameter file.
    Tolerances are zero when the setting is absent or cannot be parsed.
    """
    if param_file is None or not os.path.isfile(param_file):
        return PrecursorTolerance()

    settings = {}
    with open(param_file, 'r') as fh:
        for line in fh:
            trimmed_line = line.strip()
            if trimmed_line == "" or trimmed_line.startswith(COMMENT_CHAR) or "=" not in trimmed_line:
                continue
            key, value = _parse_key_value(trimmed_line)
            settings.setdefault(key.lower(), value)

    value = None
    for param_name in PRECURSOR_TOLERANCE_PARAM_NAMES:
        if param_name.lower() in settings:
            value = settings[param_name.lower()]
            break

    if value is None:
        timestamped_echo("Warning: Could not find parameter %s or %s in parameter file %s; cannot determine the precursor mass tolerance" % (PRECURSOR_TOLERANCE_PARAM_NAMES + (os.path.basename(param_file),)))
        return PrecursorTolerance()

    parts = value.split(",")
    left = parse_parent_mass_tolerance(parts[0])
    if left is None:
        return PrecursorTolerance()

    right = parse_parent_mass_tolerance(parts[1]) if len(parts) > 1 else None
    if right is None:
        right = left

    return PrecursorTolerance(left=left[0], right=right[0], is_ppm=left[1])
