import os

import pytest

from easyphrp.modifications import (ModificationCatalog, ModClass, ModificationCatalogError, compute_formula_mass,
                                    extract_mods_from_param_file, extract_precursor_tolerance, parse_mod_spec,
                                    parse_parent_mass_tolerance, HEXNAC_MASS)

DATA_FOLDER = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


def _write(tmpdir, name, text):
    path = tmpdir.join(name)
    path.write(text)
    return path.strpath


def test_extract_mods_from_param_file():
    catalog = extract_mods_from_param_file(os.path.join(DATA_FOLDER, "MSGFPlus_Params.txt"))

    assert len(catalog) == 4
    assert [e.symbol for e in catalog] == ['-', '*', '#', '@']
    assert [e.residues for e in catalog] == ['C', 'M', 'STY', '[']
    assert [e.mod_class for e in catalog] == [ModClass.STATIC_RESIDUE, ModClass.DYNAMIC_RESIDUE,
                                             ModClass.DYNAMIC_RESIDUE, ModClass.DYN_NTERM_PROTEIN]
    assert [e.name for e in catalog] == ['Carbamidomethyl', 'Oxidation', 'Phospho', 'Acetyl']

    assert catalog[0].mass == pytest.approx(57.021464, abs=1e-4)
    assert catalog[1].mass == pytest.approx(15.994915, abs=1e-4)
    assert catalog[2].mass == pytest.approx(79.966331, abs=1e-4)
    assert catalog[3].mass == pytest.approx(42.010565, abs=1e-4)
    assert catalog[0].mass_text == 'C2H3N1O1'


def test_mods_txt_lines(tmpdir):
    param_file = _write(tmpdir, "MSGFPlus_Mods.txt",
                        "NumMods=2\n"
                        "57.021464,C,fix,any,Carbamidomethyl\n"
                        "15.994915,M,opt,any,Oxidation   # comment\n"
                        "229.162932,*,fix,N-term,TMT6plex\n")
    catalog = extract_mods_from_param_file(param_file)

    assert [e.symbol for e in catalog] == ['-', '*', '-']
    assert catalog[2].residues == '<'
    assert catalog[2].is_terminal_static


def test_symbol_sharing():
    catalog = ModificationCatalog()
    first = catalog.add(15.994915, 'M', ModClass.DYNAMIC_RESIDUE)
    second = catalog.add(15.9949, 'W', ModClass.DYNAMIC_RESIDUE)
    third = catalog.add(15.994915, '<', ModClass.DYN_NTERM_PEPTIDE)
    static = catalog.add(57.021464, 'C', ModClass.STATIC_RESIDUE)

    assert first.symbol == '*'
    assert second.symbol == '*'
    assert third.symbol == '#'
    assert static.symbol == '-'


def test_symbols_exhausted():
    catalog = ModificationCatalog()
    for i in range(14):
        catalog.add(100.0 + i, 'K', ModClass.DYNAMIC_RESIDUE)

    symbols = [e.symbol for e in catalog]
    assert "".join(symbols[:12]) == "*#@$&!%~^`+="
    assert symbols[12] == '_'
    assert symbols[13] == '?'


def test_parse_mod_spec():
    mass, mass_text, residues, mod_class, name, unnamed_mod_id = parse_mod_spec(["15.994915", "M", "opt", "any", ""])
    assert mass == pytest.approx(15.994915)
    assert mass_text == "15.994915"
    assert residues == "M"
    assert mod_class == ModClass.DYNAMIC_RESIDUE
    assert name == "UnnamedMod1"
    assert unnamed_mod_id == 1

    # static terminal mods on specific residues become dynamic
    _, _, residues, mod_class, _, _ = parse_mod_spec(["229.162932", "K", "fix", "N-term", "TMT6plex"])
    assert residues == "<"
    assert mod_class == ModClass.DYN_NTERM_PEPTIDE

    _, _, residues, mod_class, _, _ = parse_mod_spec(["0.984016", "*", "opt", "Prot-C-term", "Amidated"])
    assert residues == "]"
    assert mod_class == ModClass.DYN_CTERM_PROTEIN


def test_keyword_in_mod_spec(tmpdir):
    param_file = _write(tmpdir, "params.txt", "DynamicMod=O1,M,opt,any,Oxidation=bad\n")
    with pytest.raises(ModificationCatalogError):
        extract_mods_from_param_file(param_file)


def test_missing_param_file(tmpdir):
    with pytest.raises(ModificationCatalogError):
        extract_mods_from_param_file(tmpdir.join("missing.txt").strpath)


def test_compute_formula_mass():
    assert compute_formula_mass("HexNAc") == HEXNAC_MASS
    assert compute_formula_mass("C2H3N1O1") == pytest.approx(57.021464, abs=1e-5)
    assert compute_formula_mass("C+2H+3N+1O+1") == pytest.approx(57.021464, abs=1e-5)
    assert compute_formula_mass("H(2) C(2) O") == pytest.approx(42.010565, abs=1e-5)
    assert compute_formula_mass("C3H6N2O0S1") == pytest.approx(compute_formula_mass("C3H6N2S1"))


def test_parse_parent_mass_tolerance():
    assert parse_parent_mass_tolerance("20ppm") == (20.0, True)
    assert parse_parent_mass_tolerance("0.5Da") == (0.5, False)
    assert parse_parent_mass_tolerance("20") is None


def test_extract_precursor_tolerance(tmpdir):
    tolerance = extract_precursor_tolerance(os.path.join(DATA_FOLDER, "MSGFPlus_Params.txt"))
    assert tolerance.left == 20.0
    assert tolerance.right == 20.0
    assert tolerance.is_ppm

    asymmetric = extract_precursor_tolerance(_write(tmpdir, "params.txt", "PMTolerance=10ppm,20ppm\n"))
    assert (asymmetric.left, asymmetric.right, asymmetric.is_ppm) == (10.0, 20.0, True)

    missing = extract_precursor_tolerance(_write(tmpdir, "empty.txt", "NumMods=2\n"))
    assert (missing.left, missing.right, missing.is_ppm) == (0.0, 0.0, False)


def test_catalog_to_dataframe():
    catalog = ModificationCatalog()
    catalog.add(15.994915, 'M', ModClass.DYNAMIC_RESIDUE, name='Oxidation')
    df = catalog.to_dataframe()

    assert list(df.columns) == ['Modification_Symbol', 'Modification_Mass', 'Target_Residues', 'Modification_Type', 'Mass_Correction_Tag']
    assert df.iloc[0]['Modification_Mass'] == "15.994915"
    assert catalog.custom_residue_masses == {}

    phospho = catalog.add(79.966331, 'STY', ModClass.DYNAMIC_RESIDUE, name='Phospho')
    df = catalog.to_dataframe({phospho: 3})
    assert list(df.columns)[-1] == 'Occurrence_Count'
    assert df['Occurrence_Count'].tolist() == [0, 3]
