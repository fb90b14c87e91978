# Config package for the CVE sync service
