#!/usr/bin/env python3
"""
Narrative Data-Science Reports - Main Entry Point
=================================================

Runs one or all of the reports:

    stock      ARIMA forecast of a daily stock price (Kalman imputation, Box-Cox)
    loan       Loan approval: LDA, KNN, decision tree, random forest, logistic regression
    insurance  Insurance claims: stepwise-AIC linear and logistic regression, random forest

Usage:
    # Run every report
    python main.py

    # Run a single report
    python main.py --report stock

    # Use another CSV and output directory
    python main.py --report loan --data data/raw/loan.csv --output out/
"""

import argparse
import logging
import sys
import warnings
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

from dsreports.data_loader import load_config
from dsreports.stock_forecast import run_stock_report
from dsreports.loan_approval import run_loan_report
from dsreports.insurance_claims import run_insurance_report

REPORTS = {
    'stock': run_stock_report,
    'loan': run_loan_report,
    'insurance': run_insurance_report
}


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure logging for the run."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(
            Path(log_dir) / f'reports_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log'
        ))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def run_reports(
    report: str,
    config: Dict[str, Any],
    data: Optional[str] = None,
    output: Optional[str] = None
) -> Dict[str, Any]:
    """
    Run the selected report(s).

    Args:
        report: Report key or 'all'
        config: Configuration dictionary
        data: CSV override (single report only)
        output: Output directory override

    Returns:
        Report key -> result dictionary
    """
    if report != 'all' and report not in REPORTS:
        raise ValueError(f"Unknown report: {report}. Choose from: {', '.join(REPORTS)}, all")
    if report == 'all' and data:
        raise ValueError("--data can only be used with a single report")

    selected = list(REPORTS) if report == 'all' else [report]

    print("\n" + "=" * 70)
    print("NARRATIVE DATA-SCIENCE REPORTS")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    results = {}
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=FutureWarning)
        warnings.simplefilter("ignore", category=UserWarning)
        for name in selected:
            results[name] = REPORTS[name](config, source=data, output_dir=output)

    print("\n" + "=" * 70)
    print("RUN COMPLETE")
    print("=" * 70)
    for name, result in results.items():
        print(f"  • {name}: {result['html_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def main(argv=None) -> int:
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Narrative data-science reports: stock forecast, loan approval, insurance claims",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --report stock
  python main.py --report loan --data data/raw/loan.csv --output out/
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--report', '-r',
        type=str,
        choices=list(REPORTS) + ['all'],
        default='all',
        help='Report to run (default: all)'
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default=None,
        help='CSV path or URL overriding the configured source (single report only)'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Output directory overriding the configured paths'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        config = load_config(args.config)
        log_config = config.get('logging', {})
        setup_logging(
            'DEBUG' if args.verbose else log_config.get('level', 'INFO'),
            log_config.get('log_dir')
        )
        run_reports(args.report, config, data=args.data, output=args.output)
        return 0

    except Exception as e:
        logging.error(f"Report run failed: {e}", exc_info=True)
        print(f"\n❌ Report run failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
