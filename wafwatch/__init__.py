"""WAF Watch - detect and alert on WAF Web ACL configuration changes."""

__version__ = "0.1.0"
