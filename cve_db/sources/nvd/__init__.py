from .fetcher import NVDFetcher
from .parser import parse_nvd_item

__all__ = ['NVDFetcher', 'parse_nvd_item']
