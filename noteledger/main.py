import argparse
import logging

from noteledger.config import Config
from noteledger.simulation import Simulation

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run a note ledger simulation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config", type=str, default=None, help="Configuration file path"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    config = Config.load(args.config) if args.config else Config.default()
    stats = Simulation(config).run()

    print(stats.summary())
    print("Simulation complete!")
