from .fetcher import CISAFetcher
from .parser import build_cisa_record, kev_cve_id

__all__ = ['CISAFetcher', 'build_cisa_record', 'kev_cve_id']
