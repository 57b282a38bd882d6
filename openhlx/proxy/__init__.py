"""
HLX proxy: one upstream connection shared by many HLX clients.
"""

from __future__ import annotations

from openhlx.proxy.proxy import HlxProxy, response_for

__all__ = ["HlxProxy", "response_for"]
