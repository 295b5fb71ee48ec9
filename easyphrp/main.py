import os
import time

import click

from .convert import process_results, write_mod_defs, MOD_DEFS_FILE_SUFFIX
from .modifications import extract_mods_from_param_file
from .ranking import SYNOPSIS_EVALUE_THRESHOLD, SYNOPSIS_SPEC_EVALUE_THRESHOLD
from .util import timestamped_echo, basename_wo_ext


@click.group(chain=True)
@click.version_option()
def cli():
    """
    EasyPHRP: Synopsis and first hits files from MS-GF+ and MSGFDB search results

    Numeric mod masses are replaced with mod symbols, PSMs are ranked per scan and filtered.
    """


# EasyPHRP Process
@cli.command()
@click.option('--msgf', 'resultsfile', required=True, type=click.Path(exists=True), help='The input MS-GF+ or MSGFDB .tsv results file.')
@click.option('--params', 'paramfile', required=True, type=click.Path(exists=True), help='The MS-GF+ parameter file or MSGFPlus_Mods.txt file used for the search.')
@click.option('--fasta', 'fastafile', required=False, type=click.Path(exists=True), help='FASTA file used for the search; proteins listed first are preferred in the first hits file.')
@click.option('--outdir', 'outdir', required=False, type=click.Path(exists=False), help='Output folder. Default: folder of the input file.')
@click.option('--evalue_threshold', default=SYNOPSIS_EVALUE_THRESHOLD, show_default=True, type=float, help='Maximum EValue for the synopsis file.')
@click.option('--spec_evalue_threshold', default=SYNOPSIS_SPEC_EVALUE_THRESHOLD, show_default=True, type=float, help='Maximum SpecEValue for the synopsis file.')
@click.option('--create_syn/--no-create_syn', default=True, show_default=True, help='Create the synopsis file.')
@click.option('--create_fht/--no-create_fht', default=True, show_default=True, help='Create the first hits file.')
@click.option('--mod_summary/--no-mod_summary', default=True, show_default=True, help='Write the modification summary with the occurrence count of each modification in the synopsis file.')
@click.option('--chunksize', default=100000, show_default=True, type=int, help='Number of result lines read at a time.')
def process(resultsfile, paramfile, fastafile, outdir, evalue_threshold, spec_evalue_threshold, create_syn, create_fht, mod_summary, chunksize):
    """
    Create synopsis and first hits files from MS-GF+ results
    """

    start_time = time.time()

    outputs = process_results(resultsfile, paramfile, fasta_file=fastafile, outdir=outdir,
                              evalue_threshold=evalue_threshold, spec_evalue_threshold=spec_evalue_threshold,
                              create_syn=create_syn, create_fht=create_fht, mod_summary=mod_summary, chunksize=chunksize)

    for output in outputs.values():
        timestamped_echo("Info: Created %s." % output)

    timestamped_echo("Info: Total elapsed time %.2f minutes." % ((time.time() - start_time) / 60.0))


# EasyPHRP Mods
@cli.command()
@click.option('--params', 'paramfile', required=True, type=click.Path(exists=True), help='The MS-GF+ parameter file or MSGFPlus_Mods.txt file.')
@click.option('--out', 'outfile', required=False, type=click.Path(exists=False), help='Output modification definitions file. Default: <params>_ModDefs.txt')
def mods(paramfile, outfile):
    """
    List the modifications of an MS-GF+ parameter file with their symbols
    """

    if outfile is None:
        outfile = os.path.join(os.path.dirname(os.path.abspath(paramfile)), basename_wo_ext(paramfile) + MOD_DEFS_FILE_SUFFIX)

    catalog = extract_mods_from_param_file(paramfile)
    write_mod_defs(catalog, outfile)
