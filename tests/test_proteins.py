import os
import unittest

import click

from easyphrp.proteins import (split_protein_list, add_update_prefix_suffix, compute_cleavage_state,
                               read_protein_order, truncate_protein_name)

DATA_FOLDER = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


class TestProteins(unittest.TestCase):

    def test_split_protein_list(self):
        first, proteins = split_protein_list("Prot1(pre=K,post=A);XXX_Prot2(pre=-,post=R)")
        self.assertEqual("Prot1", first)
        self.assertEqual([("Prot1", ("K", "A")), ("XXX_Prot2", ("-", "R"))], list(proteins.items()))

    def test_split_protein_list_without_annotations(self):
        first, proteins = split_protein_list("Prot1 Some description")
        self.assertEqual("Prot1", first)
        self.assertEqual(0, len(proteins))

    def test_split_protein_list_duplicates(self):
        first, proteins = split_protein_list("Prot1(pre=K,post=A);Prot1(pre=R,post=G)")
        self.assertEqual([("Prot1", ("K", "A"))], list(proteins.items()))

    def test_truncate_protein_name(self):
        self.assertEqual("sp|P01903|DRA_HUMAN", truncate_protein_name("sp|P01903|DRA_HUMAN HLA class II"))
        self.assertEqual("Prot1", truncate_protein_name("Prot1"))

    def test_add_update_prefix_suffix(self):
        self.assertEqual("K.PEPTIDE.L", add_update_prefix_suffix("PEPTIDE", "K", "L"))
        self.assertEqual("K.PEPTIDE.-", add_update_prefix_suffix("R.PEPTIDE.A", "K", "-"))
        self.assertEqual("-.+42.011MDHK.E", add_update_prefix_suffix("+42.011MDHK", "-", "E"))

    def test_compute_cleavage_state(self):
        self.assertEqual(2, compute_cleavage_state("K.AEPTIDEK.L"))
        self.assertEqual(1, compute_cleavage_state("K.PEPTIDEK.L"))
        self.assertEqual(1, compute_cleavage_state("A.AEPTIDEK.L"))
        self.assertEqual(0, compute_cleavage_state("A.AEPTIDEK.P"))
        self.assertEqual(0, compute_cleavage_state("A.AEPTIDEA.L"))
        self.assertEqual(2, compute_cleavage_state("-.M*DHTPQSQLK.E"))
        self.assertEqual(2, compute_cleavage_state("R.ELVISLIVESK.-"))

    def test_read_protein_order(self):
        protein_order = read_protein_order(os.path.join(DATA_FOLDER, "proteins.fasta"))
        self.assertEqual({"Prot0": 0, "Prot1": 1, "Prot2": 2}, protein_order)

    def test_read_protein_order_missing_file(self):
        self.assertRaises(click.ClickException, read_protein_order, os.path.join(DATA_FOLDER, "missing.fasta"))


if __name__ == '__main__':
    unittest.main()
