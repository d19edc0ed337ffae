"""
Reference external predictor

Usage:
    python -m traffic_insights.predict <vehicle_count> [--json]

Prints the recommended green time in seconds, or the full timing plan
as JSON with --json. Errors go to stderr with exit status 1.
"""
import argparse
import sys

from .predictor import recommend_plan


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recommend a signal timing for a vehicle count")
    parser.add_argument("vehicle_count", type=int, help="Vehicles observed at the location")
    parser.add_argument("--json", action="store_true", help="Print the full plan as JSON")
    args = parser.parse_args(argv)

    try:
        result = recommend_plan(args.vehicle_count)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.json:
        print(result.plan.model_dump_json())
    else:
        print(result.seconds)
    return 0


if __name__ == "__main__":
    sys.exit(main())
