"""
Analytics Module
"""
from .gold import GoldSummarizer
from .ohlc import OHLCCandle, OHLCEngine
from .quality import QualityReport, QualityScorer

__all__ = [
    "GoldSummarizer",
    "OHLCCandle",
    "OHLCEngine",
    "QualityReport",
    "QualityScorer",
]
