import os

import yaml

from blobflows.models.config import NetworkConfig


def load_config_text(config_text: str) -> NetworkConfig:
    return NetworkConfig.model_validate(yaml.safe_load(config_text))


def load_config_file(filename: str) -> NetworkConfig:
    if not os.path.exists(filename):
        raise FileNotFoundError(f"Could not find {filename}")

    with open(filename, "r") as f:
        return NetworkConfig.model_validate(yaml.safe_load(f))
