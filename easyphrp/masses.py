import pyopenms as po
import pyopenms.Constants

from .annotation import clean_sequence


PROTON_MASS = po.Constants.PROTON_MASS_U
WATER_MASS = po.EmpiricalFormula("H2O").getMonoWeight()
C13_MASS_DELTA = 1.00335483

STANDARD_RESIDUES = "ACDEFGHIKLMNOPQRSTUVWY"
# no mass unless defined as custom amino acids
AMBIGUOUS_RESIDUES = "BJXZ"


def _residue_masses():
    residue_db = po.ResidueDB()
    masses = {aa: residue_db.getResidue(aa).getMonoWeight(po.Residue.ResidueType.Internal) for aa in STANDARD_RESIDUES}
    masses.update({aa: 0.0 for aa in AMBIGUOUS_RESIDUES})
    return masses


# monoisotopic residue masses
monomeric_masses = _residue_masses()


def compute_sequence_mass(sequence, custom_residue_masses=None):
    """Monoisotopic mass of an unmodified sequence (residues plus water)."""
    masses = monomeric_masses
    if custom_residue_masses:
        masses = dict(monomeric_masses)
        masses.update(custom_residue_masses)

    try:
        return sum(masses[aa] for aa in sequence) + WATER_MASS
    except KeyError as e:
        raise ValueError("Unknown residue %s in sequence %s" % (e, sequence))


def compute_peptide_mass(peptide, total_mod_mass, custom_residue_masses=None):
    """Monoisotopic mass of a peptide with prefix/suffix residues and mod symbols."""
    return compute_sequence_mass(clean_sequence(peptide), custom_residue_masses) + total_mod_mass


def convolute_mass(mass_mz, current_charge, desired_charge=1):
    """
    Convert an m/z value from one charge state to another; charge 0 denotes the neutral mass.
    """
    if current_charge == desired_charge:
        return mass_mz

    if current_charge == 0:
        mh = mass_mz + PROTON_MASS
    elif current_charge == 1:
        mh = mass_mz
    else:
        mh = mass_mz * current_charge - PROTON_MASS * (current_charge - 1)

    if desired_charge == 0:
        return mh - PROTON_MASS
    if desired_charge == 1:
        return mh
    return (mh + PROTON_MASS * (desired_charge - 1)) / desired_charge


def mass_to_ppm(mass_to_convert, current_mz):
    return mass_to_convert * 1000000.0 / current_mz


def ppm_to_mass(ppm_to_convert, current_mz):
    return ppm_to_convert / 1000000.0 * current_mz


def compute_delm_corrected_ppm(delm, precursor_mono_mass, peptide_mono_mass, adjust_precursor_mass_for_c13=True):
    """
    Mass error in ppm after removing the isotope offset chosen by the search engine.
    """
    correction_count = 0

    if delm >= -0.5:
        while delm > 0.5:
            delm -= C13_MASS_DELTA
            correction_count += 1
    else:
        while delm < -0.5:
            delm += C13_MASS_DELTA
            correction_count -= 1

    if correction_count != 0:
        if adjust_precursor_mass_for_c13:
            precursor_mono_mass -= correction_count * C13_MASS_DELTA
        delm = precursor_mono_mass - peptide_mono_mass

    return mass_to_ppm(delm, peptide_mono_mass)


def dbl_to_string(value, digits_after_decimal, threshold=0.0):
    if abs(value) < threshold:
        return "0"

    text = "%.*f" % (digits_after_decimal, value)
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def mass_error_to_string(mass_error_da):
    if abs(mass_error_da) < 0.000001:
        return "0"
    if abs(mass_error_da) < 0.0001:
        return dbl_to_string(mass_error_da, 6, 0.0000001)
    return dbl_to_string(mass_error_da, 5, 0.000001)
