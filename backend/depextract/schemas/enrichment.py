from pydantic import BaseModel


class EPSSData(BaseModel):
    """EPSS (Exploit Prediction Scoring System) data for a CVE."""

    cve: str
    epss_score: float  # Probability of exploitation in next 30 days (0.0 - 1.0)
    percentile: float = 0.0
    date: str = ""


class KEVEntry(BaseModel):
    """CISA Known Exploited Vulnerability entry."""

    cve: str
    vendor_project: str = ""
    product: str = ""
    date_added: str = ""
    known_ransomware_use: bool = False
