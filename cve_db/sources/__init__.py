"""
Upstream vulnerability sources

- base/: common fetcher infrastructure and result types
- nvd/: NVD CVE API 2.0 fetcher and record parser
- cisa/: CISA KEV catalog fetcher and record builder
- source_client.py: single entry point used by the orchestrator
"""
