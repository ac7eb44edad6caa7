from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from visual_catalog.core.lazy_resource import RetryPolicy


@dataclass
class FeatureExtractionConfig:
    """Configuration for the embedding model"""
    model_name: str = "mobilenetv2_100"
    model_path: str = "assets/mobilenetv2_100.pth"
    input_size: int = 224
    device: str = "cpu"


@dataclass
class SimilaritySearchConfig:
    """Configuration for similarity search"""
    max_results: int = 5
    scan_batch_size: int = 256


@dataclass
class InitializationConfig:
    """Retry policy for loading the model and opening the store"""
    max_attempts: int = 1
    initial_delay: float = 0.5
    max_delay: float = 4.0
    backoff_multiplier: float = 2.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier
        )


@dataclass
class SystemConfig:
    """System-wide configuration"""
    n_workers: int = 4
    database_path: str = "data/vectors.db"
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Embedding model
    feature_extraction: FeatureExtractionConfig = field(
        default_factory=FeatureExtractionConfig
    )

    # Similarity search
    similarity_search: SimilaritySearchConfig = field(
        default_factory=SimilaritySearchConfig
    )

    # Lazy initialization
    initialization: InitializationConfig = field(
        default_factory=InitializationConfig
    )

    def save(self, path: str = "config.yaml"):
        """Save configuration to YAML file"""
        with open(path, 'w') as f:
            yaml.dump(asdict(self), f, default_flow_style=False, indent=2)

    @classmethod
    def load(cls, path: str = "config.yaml") -> 'SystemConfig':
        """Load configuration from YAML file"""
        if not Path(path).exists():
            return cls()  # Return default config

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        config = cls()

        # Load system settings
        config.n_workers = config_dict.get('n_workers', config.n_workers)
        config.database_path = config_dict.get('database_path', config.database_path)
        config.log_level = config_dict.get('log_level', config.log_level)
        config.log_dir = config_dict.get('log_dir', config.log_dir)

        # Load feature extraction settings
        if 'feature_extraction' in config_dict:
            fe = config_dict['feature_extraction'] or {}
            config.feature_extraction = FeatureExtractionConfig(
                model_name=fe.get('model_name', config.feature_extraction.model_name),
                model_path=fe.get('model_path', config.feature_extraction.model_path),
                input_size=fe.get('input_size', config.feature_extraction.input_size),
                device=fe.get('device', config.feature_extraction.device)
            )

        # Load similarity search settings
        if 'similarity_search' in config_dict:
            ss = config_dict['similarity_search'] or {}
            config.similarity_search = SimilaritySearchConfig(
                max_results=ss.get('max_results', config.similarity_search.max_results),
                scan_batch_size=ss.get('scan_batch_size', config.similarity_search.scan_batch_size)
            )

        # Load initialization settings
        if 'initialization' in config_dict:
            init = config_dict['initialization'] or {}
            config.initialization = InitializationConfig(
                max_attempts=init.get('max_attempts', config.initialization.max_attempts),
                initial_delay=init.get('initial_delay', config.initialization.initial_delay),
                max_delay=init.get('max_delay', config.initialization.max_delay),
                backoff_multiplier=init.get('backoff_multiplier',
                                            config.initialization.backoff_multiplier)
            )

        return config
