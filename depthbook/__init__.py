"""
depthbook - Local order book + trade tape reconstruction for Binance spot streams.

Architecture:
- datafeed/: WebSocket lifecycle, snapshot fetch, diff/snapshot synchronization
- engine/: Trade log and throttled view derivation
- ui/: Order book ladder + recent trades (Textual TUI)
- proxy: Snapshot forwarding proxy (aiohttp.web)
"""

__version__ = "0.1.0"
