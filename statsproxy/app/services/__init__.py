"""Services package for the proxy.

This package provides:
- Adaptive rate limiting (burst bucket, sustained window, bans, legacy counters)
- Upstream forwarding with endpoint allow-list
- CSP report normalization
"""
