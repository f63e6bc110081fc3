"""
Main module for fa_prom_target_lens, a searchable view of the scrape targets
of a Prometheus server.

It provides a REST API that summarizes the active and dropped targets of every
scrape pool and fuzzy-searches them by their labels.

Targets are loaded from the targets API of a Prometheus server or from a saved
copy of its response in a JSON or YAML file.
"""
import argparse as ap
import os

from .rest_api import run_rest_api


def parse_args() -> ap.Namespace:
    """Parses the command-line arguments

    Only optional argument is a TOML config file

    It is intended for development purposes.

    Normally no command-line arguments are passed in and Target-lens is started
    by simply running

      python -m fa_target_lens

    All configuration in that case is done through environment variables.
    """
    parser = ap.ArgumentParser(formatter_class=ap.ArgumentDefaultsHelpFormatter)

    parser.add_argument(
        "config_file",
        help="Path to TOML config file for running REST API with hypercorn",
        nargs="?",
        default=os.getenv("CONFIG_FILE", "CONFIG_FILE env variable"),
    )

    parser.add_argument(
        "-s",
        "--targets-source",
        help="Prometheus base URL or targets snapshot file, overrides the config file",
        default=os.getenv("TARGETS_SOURCE"),
    )

    return parser.parse_args()


if __name__ == "__main__":
    ARGS = parse_args()
    run_rest_api(ARGS.config_file, ARGS.targets_source)
