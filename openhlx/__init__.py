"""
openhlx - control plane for HLX audio matrix switchers.

openhlx speaks the HLX telnet control protocol in both directions: a client
runtime that mirrors and drives a device, and a simulator that stands in for
one on the network.
"""

__version__ = "0.1.0"
__author__ = "openhlx Contributors"
__license__ = "GPL-2.0"

from openhlx.client import HlxClient
from openhlx.simulator import HlxSimulator

__all__ = ["HlxClient", "HlxSimulator", "__version__"]
