"""Run with: python -m epoch_distributor run"""

from .cli import main

main()
