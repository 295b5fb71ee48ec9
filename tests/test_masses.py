import unittest

from easyphrp.masses import (compute_sequence_mass, compute_peptide_mass, convolute_mass, mass_to_ppm, ppm_to_mass,
                             compute_delm_corrected_ppm, dbl_to_string, mass_error_to_string,
                             PROTON_MASS, WATER_MASS, C13_MASS_DELTA, monomeric_masses)


class TestMasses(unittest.TestCase):

    def test_compute_sequence_mass(self):
        self.assertAlmostEqual(monomeric_masses['G'] + WATER_MASS, compute_sequence_mass("G"))
        self.assertAlmostEqual(1165.554992 + WATER_MASS, compute_sequence_mass("MDHTPQSQLK"), places=4)
        self.assertRaises(ValueError, compute_sequence_mass, "PEP1")

    def test_residue_masses(self):
        self.assertAlmostEqual(57.021464, monomeric_masses['G'], places=5)
        self.assertAlmostEqual(103.009185, monomeric_masses['C'], places=5)
        self.assertAlmostEqual(186.079313, monomeric_masses['W'], places=5)
        self.assertAlmostEqual(monomeric_masses['I'], monomeric_masses['L'])
        self.assertEqual(0.0, monomeric_masses['X'])
        self.assertAlmostEqual(18.010565, WATER_MASS, places=5)
        self.assertAlmostEqual(1.007276, PROTON_MASS, places=5)

    def test_custom_residue_masses(self):
        self.assertAlmostEqual(WATER_MASS, compute_sequence_mass("B"))
        self.assertAlmostEqual(100.0 + WATER_MASS, compute_sequence_mass("B", {'B': 100.0}))

    def test_compute_peptide_mass(self):
        mass = compute_peptide_mass("K.M*DHTPQSQLK.L", 15.994915)
        self.assertAlmostEqual(compute_sequence_mass("MDHTPQSQLK") + 15.994915, mass)

    def test_convolute_mass(self):
        self.assertAlmostEqual(1000.0 - PROTON_MASS, convolute_mass(1000.0, 1, 0))
        self.assertAlmostEqual(1000.0 + PROTON_MASS, convolute_mass(1000.0, 0, 1))
        self.assertAlmostEqual((1000.0 + 2 * PROTON_MASS) / 2, convolute_mass(1000.0, 0, 2))
        self.assertAlmostEqual(1000.0, convolute_mass(convolute_mass(1000.0, 0, 3), 3, 0))
        self.assertEqual(500.0, convolute_mass(500.0, 2, 2))

    def test_ppm(self):
        self.assertAlmostEqual(10.0, mass_to_ppm(0.01, 1000.0))
        self.assertAlmostEqual(0.01, ppm_to_mass(10.0, 1000.0))

    def test_compute_delm_corrected_ppm(self):
        self.assertAlmostEqual(1.0, compute_delm_corrected_ppm(0.001, 1000.001, 1000.0), places=6)
        self.assertAlmostEqual(1.0, compute_delm_corrected_ppm(C13_MASS_DELTA + 0.001, 1000.001 + C13_MASS_DELTA, 1000.0), places=6)
        self.assertAlmostEqual(-1.0, compute_delm_corrected_ppm(-C13_MASS_DELTA - 0.001, 999.999 - C13_MASS_DELTA, 1000.0), places=6)

    def test_dbl_to_string(self):
        self.assertEqual("1.23", dbl_to_string(1.2300, 4))
        self.assertEqual("1226.583386", dbl_to_string(1226.5833864, 6))
        self.assertEqual("0", dbl_to_string(0.00001, 5, 0.00005))
        self.assertEqual("-0.5", dbl_to_string(-0.5, 3))
        self.assertEqual("12", dbl_to_string(12.0, 2))

    def test_mass_error_to_string(self):
        self.assertEqual("0", mass_error_to_string(0.0000005))
        self.assertEqual("0.000012", mass_error_to_string(0.000012))
        self.assertEqual("-0.00123", mass_error_to_string(-0.00123))


if __name__ == '__main__':
    unittest.main()
