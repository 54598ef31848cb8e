"""
ITS2 Symbiont Analysis Pipeline
----------------------------------------------------------------------------------------
Workflow for analysis of coral Symbiodiniaceae ITS2 sequencing outputs, from
sequence-variant and type-profile tables to dominance changes, ordinations and
group-wise PERMANOVA results.
Primarily set up to follow tagged coral colonies across sampling years.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import sys
import traceback
from pathlib import Path

# Third-Party Imports
import pandas as pd

# Local Imports
parent_dir = Path(__file__).resolve().parent
sys.path.append(str(parent_dir))

from symbiont_its2 import constants
from symbiont_its2.config import get_config
from symbiont_its2.downstream.analysis import run_downstream
from symbiont_its2.logger import setup_logging

# ========================== INITIALIZATION & CONFIGURATION ========================== #

pd.set_option('display.max_colwidth', None)

# =================================== MAIN WORKFLOW ================================== #

class WorkflowITS2:
    def __init__(self, config_path: Path = constants.DEFAULT_CONFIG_PATH) -> None:
        self.config = get_config(config_path)
        self.output_dir = Path(self.config.get("output_dir", constants.DEFAULT_OUTPUT_DIR))
        self.logger = setup_logging(
            Path(self.config.get("log_dir", self.output_dir / constants.DEFAULT_LOG_DIR))
        )

    def run(self) -> None:
        """Execute the workflow based on configuration settings."""
        try:
            self.logger.info("Starting downstream processing")
            run_downstream(self.config, self.output_dir)
            self.logger.info("Downstream processing completed")
        except Exception as e:
            self.logger.error(f"Workflow execution failed: {e}\n"
                              f"Traceback: {traceback.format_exc()}")
            raise WorkflowError("Workflow aborted due to errors") from e


class WorkflowError(Exception):
    """Custom exception for workflow-related errors."""
    pass


def main(config_path: Path = constants.DEFAULT_CONFIG_PATH) -> None:
    """Run the entire workflow."""
    workflow = WorkflowITS2(config_path)
    workflow.run()

if __name__ == "__main__":
    # Get custom config.yaml file from system arguments
    parser = argparse.ArgumentParser(description="Run ITS2 symbiont workflow.")
    parser.add_argument(
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help="Path to the configuration file.",
    )
    args = parser.parse_args()
    main(args.config)
