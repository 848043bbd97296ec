"""
Data Processing Pipeline

Components for importing, seeding, and reporting on network data.
"""

from trustnet.pipeline.ingest import load_network_export, NetworkExport
from trustnet.pipeline.seed import seed_network, SeedReport
from trustnet.pipeline.outputs import generate_outputs, OutputGenerator

__all__ = [
    "load_network_export",
    "NetworkExport",
    "seed_network",
    "SeedReport",
    "generate_outputs",
    "OutputGenerator",
]
