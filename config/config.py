from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass
class MaciConfig:
    state_tree_depth: int = 4
    message_tree_depth: int = 4
    tree_arity: int = 5
    state_tree_zero_value: int = 0
    message_tree_zero_value: int = 0

    vote_options_max_leaf_index: int = 24
    initial_voice_credit_balance: int = 100

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_level: str = "INFO"

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)

        if self.state_tree_depth < 1 or self.message_tree_depth < 1:
            raise ValueError("Tree depths must be at least 1")
        if self.tree_arity < 2:
            raise ValueError("Tree arity must be at least 2")
        if self.vote_options_max_leaf_index < 0:
            raise ValueError("vote_options_max_leaf_index must be non-negative")
        if self.initial_voice_credit_balance < 0:
            raise ValueError("initial_voice_credit_balance must be non-negative")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level {self.log_level}")

    @property
    def max_users(self) -> int:
        # State index 0 is reserved for the blank leaf
        return self.tree_arity ** self.state_tree_depth - 1

    @property
    def max_messages(self) -> int:
        return self.tree_arity ** self.message_tree_depth


def load_config(config_path: Optional[Path] = None) -> MaciConfig:
    """Load configuration from a YAML file, or return defaults if it is absent"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return MaciConfig()

    with open(config_path, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    defaults = MaciConfig()
    trees = config_data.get('merkle_trees', {})
    logging_data = config_data.get('logging', {})

    config = MaciConfig(
        state_tree_depth=trees.get('state_tree_depth', defaults.state_tree_depth),
        message_tree_depth=trees.get('message_tree_depth', defaults.message_tree_depth),
        tree_arity=trees.get('arity', defaults.tree_arity),
        state_tree_zero_value=trees.get('state_tree_zero_value', defaults.state_tree_zero_value),
        message_tree_zero_value=trees.get('message_tree_zero_value', defaults.message_tree_zero_value),
        vote_options_max_leaf_index=config_data.get(
            'vote_options_max_leaf_index', defaults.vote_options_max_leaf_index),
        initial_voice_credit_balance=config_data.get(
            'initial_voice_credit_balance', defaults.initial_voice_credit_balance),
        log_dir=Path(logging_data.get('log_dir', defaults.log_dir)),
        log_level=logging_data.get('level', defaults.log_level),
    )

    logger.info(f"Loaded config from {config_path}")
    return config


def save_config(config: MaciConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    config_data = {
        'merkle_trees': {
            'state_tree_depth': config.state_tree_depth,
            'message_tree_depth': config.message_tree_depth,
            'arity': config.tree_arity,
            'state_tree_zero_value': config.state_tree_zero_value,
            'message_tree_zero_value': config.message_tree_zero_value,
        },
        'vote_options_max_leaf_index': config.vote_options_max_leaf_index,
        'initial_voice_credit_balance': config.initial_voice_credit_balance,
        'logging': {
            'log_dir': str(config.log_dir),
            'level': config.log_level,
        },
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
