"""Static analysis of Kafka producers and consumers across language ecosystems."""

from .catalog import PatternCatalog, load_catalog
from .classifier import ProducerClassifier
from .config import KafkaScanConfig, load_config
from .models import Category, ScanReport
from .orchestrator import Orchestrator
from .pii import PiiTagger

__version__ = "0.1.0"

__all__ = [
    "Category",
    "KafkaScanConfig",
    "Orchestrator",
    "PatternCatalog",
    "PiiTagger",
    "ProducerClassifier",
    "ScanReport",
    "load_catalog",
    "load_config",
    "__version__",
]
