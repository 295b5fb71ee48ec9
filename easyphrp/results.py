from dataclasses import dataclass, replace


def int_safe(text, default=0):
    try:
        return int(text)
    except (TypeError, ValueError):
        return default


def float_safe(text, default=0.0):
    try:
        return float(text)
    except (TypeError, ValueError):
        return default


@dataclass
class SearchResult:
    """
    One PSM of an MS-GF+ / MSGFDB result file.

    Text fields hold the values written to the synopsis / first hits files;
    the *_num fields hold the parsed numbers used for sorting and filtering.
    """
    scan: str = ""
    scan_num: int = 0
    frag_method: str = ""
    spec_index: str = ""
    charge: str = ""
    charge_num: int = 0
    precursor_mz: str = ""
    delm: str = ""
    delm_ppm: str = ""
    mh: str = ""
    peptide: str = ""
    protein: str = ""
    ntt: str = ""
    de_novo_score: str = ""
    msgf_score: str = ""
    spec_evalue: str = ""
    spec_evalue_num: float = 0.0
    evalue: str = ""
    evalue_num: float = 0.0
    qvalue: str = ""
    qvalue_num: float = 0.0
    pep_qvalue: str = ""
    isotope_error: str = ""
    ims_scan: str = ""
    ims_drift_time: str = ""
    rank: int = 0
    # catalog entries matched in the peptide
    mods: tuple = ()

    def copy(self, **changes):
        return replace(self, **changes)
