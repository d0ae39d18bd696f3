"""
Core analysis logic for CLI.
"""
from pathlib import Path
from typing import Dict, List, Optional

from evidence_fusion.config.fusion import FusionConfig
from evidence_fusion.config.settings import DataSettings
from evidence_fusion.data.providers import DataFrameIndicatorProvider, DataFrameMarketData
from evidence_fusion.data.providers.frame_provider import load_ohlcv_csv
from evidence_fusion.signal_generation.core import ComponentSignal, FusionDecision, Timeframe, Zone
from evidence_fusion.signal_generation.engine import FusionEngineRegistry
from evidence_fusion.utils.logging import get_logger

logger = get_logger(__name__)


class FusionAnalyzer:
    """Loads CSV history and runs fusion evaluations for the CLI."""

    def __init__(self, data_settings: DataSettings, config: Optional[FusionConfig] = None):
        """
        Initialize the analyzer.

        Args:
            data_settings: Where to find ``{instrument}_{timeframe}.csv`` files.
            config: Engine configuration.
        """
        self.data_settings = data_settings
        self.market_data = DataFrameMarketData()
        self.indicator_provider = DataFrameIndicatorProvider(self.market_data)
        self.registry = FusionEngineRegistry(self.market_data, self.indicator_provider, config=config)
        self._loaded: Dict[str, List[Timeframe]] = {}

    def load_instrument(self, instrument: str) -> List[Timeframe]:
        """
        Load every configured timeframe found on disk for ``instrument``.

        Raises:
            FileNotFoundError: If no file exists for any configured timeframe.
        """
        if instrument in self._loaded:
            return self._loaded[instrument]

        loaded = []
        data_dir = Path(self.data_settings.DATA_DIR)
        for name in self.data_settings.TIMEFRAMES:
            timeframe = Timeframe.parse(name)
            path = data_dir / self.data_settings.FILE_PATTERN.format(instrument=instrument, timeframe=timeframe.name)
            if not path.exists():
                logger.debug("No data file", instrument=instrument, timeframe=timeframe.name, path=str(path))
                continue
            self.market_data.add_frame(instrument, timeframe, load_ohlcv_csv(str(path)))
            loaded.append(timeframe)

        if not loaded:
            raise FileNotFoundError(f"No data files for {instrument} in {data_dir}")
        logger.info("Loaded history", instrument=instrument, timeframes=[tf.name for tf in loaded])
        self._loaded[instrument] = loaded
        return loaded

    def evaluate(self, instrument: str, lag: int = 0) -> FusionDecision:
        self.load_instrument(instrument)
        return self.registry.evaluate(instrument, lag)

    def component(self, instrument: str, name: str, lag: int = 0) -> ComponentSignal:
        self.load_instrument(instrument)
        return self.registry.get_component_signal(instrument, name, lag)

    def zones(self, instrument: str, max_count: int, reference_price: Optional[float] = None) -> List[Zone]:
        self.load_instrument(instrument)
        if reference_price is None:
            reference_price = self.market_data.get_tick_price(instrument)
        return self.registry.query_zones(instrument, max_count, reference_price)
