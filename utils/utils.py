"""
Logging setup and circuit-input persistence helpers
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from primitives.snark_crypto import stringify_big_ints, unstringify_big_ints


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None, log_dir: Optional[Path] = None):
    """Configure the root logger with a file and a console handler"""
    if log_file is None:
        log_dir = Path(log_dir or "logs")
        log_file = log_dir / f"maci_state_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")

    return logger


def save_circuit_inputs(inputs: Dict[str, Any], filepath: Path):
    """Write circuit inputs as JSON with every integer rendered in decimal"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump(stringify_big_ints(inputs), f, indent=2)

    logging.getLogger(__name__).info(f"Circuit inputs saved to {filepath}")


def load_circuit_inputs(filepath: Path) -> Dict[str, Any]:
    with open(filepath, 'r') as f:
        return unstringify_big_ints(json.load(f))
