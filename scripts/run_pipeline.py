"""
Script to run the ingestion pipeline for one resource category

Example:
    python scripts/run_pipeline.py compute-instances \
        --command "gcloud compute instances list --format=json" \
        --timestamp-field creationTimestamp
"""

import sys
import os

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from ingestion.cli import main


if __name__ == "__main__":
    sys.exit(main())
