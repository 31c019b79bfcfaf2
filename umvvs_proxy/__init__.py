"""
UMVVS Postback Proxy
====================

Replays the TRA Used Motor Vehicle Valuation System's ASP.NET Web Forms
cascading dropdowns (make → model → year → country → fuel type → engine)
and serves the options as plain JSON.

Pipeline: Fetch → Scrape tokens → Postback → Parse delta → Repeat
"""

__version__ = "0.1.0"
