"""
CISA Known Exploited Vulnerabilities parser

KEV entries look like:
    {"cveID": "CVE-2021-44228", "vendorProject": "Apache", "product": "Log4j2",
     "vulnerabilityName": "...", "dateAdded": "2021-12-10",
     "shortDescription": "...", "requiredAction": "...", "dueDate": "2021-12-24",
     "knownRansomwareCampaignUse": "Known", "notes": "...", "cwes": [...]}
"""

from typing import Any, Dict

from cve_db.models import CVE_ID_PATTERN, SOURCE_CISA, VulnerabilityRecord
from cve_db.sources.base.exceptions import ParseException

DEFAULT_KEV_NAME = "CISA Known Exploited Vulnerability"


def kev_cve_id(entry: Dict[str, Any]) -> str:
    """Return the normalized CVE id of a KEV entry or raise ParseException"""
    if not isinstance(entry, dict):
        raise ParseException("KEV entry is not an object", source_name="cisa",
                             raw_data_sample=str(entry)[:200])
    cve_id = (entry.get('cveID') or '').strip().upper()
    if not CVE_ID_PATTERN.match(cve_id):
        raise ParseException(f"KEV entry has invalid cveID: {entry.get('cveID')!r}",
                             source_name="cisa", raw_data_sample=str(entry)[:200])
    return cve_id


def build_cisa_record(entry: Dict[str, Any]) -> VulnerabilityRecord:
    """Synthesize a minimal record for a KEV entry that NVD could not supply"""
    cve_id = kev_cve_id(entry)
    date_added = entry.get('dateAdded')
    return VulnerabilityRecord(
        id=cve_id,
        published_at=date_added,
        last_modified_at=date_added,
        descriptions=[{'lang': 'en', 'value': entry.get('vulnerabilityName') or DEFAULT_KEV_NAME}],
        source=SOURCE_CISA,
        cisa_data=dict(entry),
        raw={},
    )
