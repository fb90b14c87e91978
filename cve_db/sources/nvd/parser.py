"""
NVD API 2.0 record parser

Turns one element of the `vulnerabilities` array into a VulnerabilityRecord.
The full `cve` object is kept as `raw`; only the fields needed for the
record's own columns are read.
"""

from typing import Any, Dict, Optional

from cve_db.models import CVE_ID_PATTERN, SOURCE_NVD, VulnerabilityRecord
from cve_db.sources.base.exceptions import ParseException


def parse_nvd_item(item: Dict[str, Any], cisa_data: Optional[Dict[str, Any]] = None) -> VulnerabilityRecord:
    """
    Parse one NVD `vulnerabilities[]` entry

    Raises:
        ParseException: if the entry has no usable `cve.id`
    """
    if not isinstance(item, dict):
        raise ParseException("NVD entry is not an object", source_name="nvd",
                             raw_data_sample=str(item)[:200])

    cve = item.get('cve')
    if not isinstance(cve, dict):
        raise ParseException("NVD entry has no 'cve' object", source_name="nvd",
                             raw_data_sample=str(item)[:200])

    cve_id = (cve.get('id') or '').strip().upper()
    if not CVE_ID_PATTERN.match(cve_id):
        raise ParseException(f"Invalid or missing CVE id: {cve.get('id')!r}", source_name="nvd",
                             raw_data_sample=str(cve)[:200])

    descriptions = [
        {'lang': d.get('lang', ''), 'value': d.get('value', '')}
        for d in cve.get('descriptions', []) or []
        if isinstance(d, dict) and d.get('value')
    ]

    return VulnerabilityRecord(
        id=cve_id,
        published_at=cve.get('published'),
        last_modified_at=cve.get('lastModified') or cve.get('published'),
        descriptions=descriptions,
        source=SOURCE_NVD,
        cisa_data=cisa_data,
        raw=cve,
    )
