# Script that geocodes a list of store addresses with provider fallback
from argparse import ArgumentParser
import logging
import sys
from pathlib import Path

import pandas as pd
from colorama import Fore, Style
from tqdm import tqdm

from store_geocoder.geocoding import ProviderOrchestrator
from store_geocoder.settings import load_settings
from store_geocoder.utils.errors import SettingsValidationError


def read_addresses(path: Path, column: str | None = None) -> list[str]:
    """Read one address per line, or one column of a CSV file."""
    if path.suffix.lower() == '.csv':
        if not column:
            raise SystemExit('--column is required for CSV input')
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        if column not in frame.columns:
            raise SystemExit(f"Column '{column}' not found in {path} (have: {', '.join(frame.columns)})")
        return frame[column].tolist()

    with open(path, 'r', encoding='utf8') as fh:
        return [line.rstrip('\n') for line in fh if line.strip()]


def outcomes_frame(addresses: list[str], outcomes: list) -> pd.DataFrame:
    rows = []
    for address, outcome in zip(addresses, outcomes):
        row = outcome.to_dict()
        # Earlier provider failures are summarized rather than nested
        attempts = row.pop('attempts', [])
        if attempts:
            row['earlier_failures'] = '; '.join(f"{a['provider_id']}: {a['message']}" for a in attempts)
        rows.append({'address': address, **row})
    return pd.DataFrame(rows)


def print_provider_tests(orchestrator: ProviderOrchestrator) -> None:
    for provider_id, health in orchestrator.test_all_providers().items():
        test = health.connection_test
        if not health.configured:
            status = f'{Fore.YELLOW}Not configured{Style.RESET_ALL}'
        elif test is not None and test.success:
            status = f'{Fore.GREEN}OK{Style.RESET_ALL} ({test.latency_ms:.0f}ms)'
        else:
            status = f'{Fore.RED}Failed{Style.RESET_ALL}: {test.message if test else "no result"}'
        print(f'{provider_id:<10} {"-" * 4}> {status}')


def print_stats(orchestrator: ProviderOrchestrator) -> None:
    for provider_id, stats in orchestrator.get_provider_stats().items():
        print(
            f'{provider_id:<10} requests={stats.requests} ok={stats.successes} failed={stats.failures} '
            f'tokens={stats.current_tokens:.2f}/{stats.burst_capacity}'
        )


if __name__ == '__main__':
    parser = ArgumentParser(description='Geocode store addresses with provider fallback')
    parser.add_argument('input', type=Path, nargs='?', help='Text file (one address per line) or CSV')
    parser.add_argument('--output', '-o', type=Path, default=None)
    parser.add_argument('--column', '-c', type=str, default=None, help='Address column for CSV input')
    parser.add_argument('--provider', '-p', type=str, default=None, help='Preferred provider id')
    parser.add_argument('--test-providers', '-t', action='store_true')
    parser.add_argument('--stats', '-s', action='store_true')
    parser.add_argument('--log-file', type=Path, default=None)
    parser.add_argument('--verbose', '-v', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        filename=args.log_file,
    )

    try:
        settings = load_settings()
    except SettingsValidationError as e:
        print(f'{Fore.RED}{e}{Style.RESET_ALL}\n{e.summary()}', file=sys.stderr)
        sys.exit(2)

    with ProviderOrchestrator.from_settings(settings) as orchestrator:
        if args.test_providers:
            print_provider_tests(orchestrator)

        if args.input is not None:
            addresses = read_addresses(args.input, args.column)
            with tqdm(total=len(addresses), desc='Geocoding', unit='addr') as bar:
                outcomes = orchestrator.batch_geocode(
                    addresses,
                    preferred_provider_id=args.provider,
                    on_progress=lambda done, total: bar.update(done - bar.n),
                )

            frame = outcomes_frame(addresses, outcomes)
            output = args.output or args.input.with_name(f'{args.input.stem}_geocoded.csv')
            frame.to_csv(output, index=False)
            succeeded = int((frame['status'] == 'success').sum())
            print(f'Geocoded {succeeded}/{len(frame)} addresses -> {output}')
        elif not args.test_providers:
            parser.error('an input file is required unless --test-providers is given')

        if args.stats:
            print_stats(orchestrator)
