#!/usr/bin/env python3
"""
SIE Ledger CLI - Command line interface for reading SIE ledgers.

Lists accounts with opening and closing balances, verifications and their
postings, with optional CSV output format.
"""

import argparse
import csv
import logging
import sys
from typing import Dict

import sie_ledger


def list_accounts(ledger: sie_ledger.SieLedger, non_zero_only: bool = False, csv_output: bool = False) -> None:
    """List accounts with their opening and closing balances."""
    account_data = []
    for account in ledger.accounts:
        # Skip accounts without any balance if requested
        if non_zero_only and account.opening_balance == 0.0 and account.closing_balance == 0.0:
            continue

        account_data.append({
            'number': account.number,
            'name': account.name,
            'opening_balance': account.opening_balance,
            'closing_balance': account.closing_balance,
        })

    account_data.sort(key=lambda x: x['number'])

    if csv_output:
        writer = csv.DictWriter(sys.stdout, fieldnames=['number', 'name', 'opening_balance', 'closing_balance'])
        writer.writeheader()
        writer.writerows(account_data)
    else:
        print(f"{'Account':<10} {'Name':<30} {'Opening':>15} {'Closing':>15}")
        print("-" * 73)
        for account in account_data:
            print(f"{account['number']:<10} {account['name']:<30} "
                  f"{account['opening_balance']:>15.2f} {account['closing_balance']:>15.2f}")

        print(f"\nTotal accounts: {len(account_data)}")


def list_vouchers(ledger: sie_ledger.SieLedger, csv_output: bool = False) -> None:
    """List all verifications in file order with a summary of their postings."""
    voucher_data = []
    for verification in ledger.verifications:
        voucher_data.append({
            'voucher': verification.voucher_index,
            'date': verification.date,
            'description': verification.text,
            'transactions': len(verification.transactions),
            'total_amount': sum(abs(t.amount) for t in verification.transactions),
        })

    if csv_output:
        writer = csv.DictWriter(sys.stdout, fieldnames=['voucher', 'date', 'description', 'transactions', 'total_amount'])
        writer.writeheader()
        writer.writerows(voucher_data)
    else:
        print(f"{'Voucher':<10} {'Date':<10} {'Description':<30} {'Trans':>6} {'Amount':>12}")
        print("-" * 72)
        for voucher in voucher_data:
            print(f"{voucher['voucher']:<10} {voucher['date']:<10} {voucher['description']:<30} "
                  f"{voucher['transactions']:>6} {voucher['total_amount']:>12.2f}")

        print(f"\nTotal vouchers: {len(voucher_data)}")


def list_transactions(ledger: sie_ledger.SieLedger, csv_output: bool = False) -> None:
    """List every posting in file order."""
    account_names: Dict[int, str] = {
        number: account.name for number, account in sie_ledger.index_accounts(ledger.accounts).items()
    }

    transaction_data = []
    for verification in ledger.verifications:
        for transaction in verification.transactions:
            transaction_data.append({
                'voucher': verification.voucher_index,
                'date': verification.date,
                'description': verification.text,
                'account': transaction.account_number,
                'account_name': account_names.get(transaction.account_number, ''),
                'amount': transaction.amount,
            })

    if csv_output:
        writer = csv.DictWriter(sys.stdout, fieldnames=['voucher', 'date', 'description', 'account', 'account_name', 'amount'])
        writer.writeheader()
        writer.writerows(transaction_data)
    else:
        print(f"{'Voucher':<10} {'Date':<10} {'Description':<25} {'Account':<8} {'Name':<25} {'Amount':>12}")
        print("-" * 95)
        for row in transaction_data:
            print(f"{row['voucher']:<10} {row['date']:<10} {row['description']:<25} "
                  f"{row['account']:<8} {row['account_name']:<25} {row['amount']:>12.2f}")

        print(f"\nTotal transactions: {len(transaction_data)}")


def show_summary(ledger: sie_ledger.SieLedger, csv_output: bool = False) -> None:
    """Show counts of the parsed data and any anomalies found."""
    non_zero_accounts = sum(
        1 for account in ledger.accounts
        if account.opening_balance != 0.0 or account.closing_balance != 0.0
    )

    summary_data = {
        'total_accounts': len(ledger.accounts),
        'non_zero_accounts': non_zero_accounts,
        'total_vouchers': len(ledger.verifications),
        'total_transactions': sum(len(v.transactions) for v in ledger.verifications),
        'anomalies': len(ledger.anomalies),
    }

    if csv_output:
        writer = csv.DictWriter(sys.stdout, fieldnames=summary_data.keys())
        writer.writeheader()
        writer.writerow(summary_data)
    else:
        print("SIE Ledger Summary")
        print("=" * 50)
        print()

        print("Data Summary:")
        print(f"  Total Accounts: {summary_data['total_accounts']}")
        print(f"  Non-zero Accounts: {summary_data['non_zero_accounts']}")
        print(f"  Total Vouchers: {summary_data['total_vouchers']}")
        print(f"  Total Transactions: {summary_data['total_transactions']}")
        print(f"  Anomalies: {summary_data['anomalies']}")

        if ledger.anomalies:
            print()
            print("Anomalies:")
            for anomaly in ledger.anomalies:
                where = f"line {anomaly.line_number}: " if anomaly.line_number else ""
                print(f"  {where}{anomaly.message}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="SIE ledger reader - List accounts and verifications from Swedish SIE accounting files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s summary file.se                     # Show counts and anomalies
  %(prog)s accounts file.se                    # List all accounts
  %(prog)s accounts file.se --non-zero         # List only accounts with balances
  %(prog)s accounts file.se --csv              # Output as CSV
  %(prog)s vouchers file.se                    # List all verifications
  %(prog)s transactions file.se --csv          # Output every posting as CSV
        """
    )

    parser.add_argument('command', choices=['accounts', 'vouchers', 'transactions', 'summary'],
                        help='Command to execute')
    parser.add_argument('file', help='SIE file to read')
    parser.add_argument('--csv', action='store_true',
                        help='Output in CSV format')
    parser.add_argument('--non-zero', action='store_true',
                        help='For accounts: only show accounts with a non-zero opening or closing balance')
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true',
                           help='Log parsing details to stderr')
    verbosity.add_argument('-q', '--quiet', action='store_true',
                           help='Only log errors')

    args = parser.parse_args()

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(format='%(levelname)s %(name)s: %(message)s', level=level)

    try:
        ledger = sie_ledger.parse_sie_file(args.file)
    except FileNotFoundError:
        print(f"Error: File '{args.file}' not found", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error reading SIE file: {e}", file=sys.stderr)
        sys.exit(1)

    # Execute the requested command
    if args.command == 'accounts':
        list_accounts(ledger, non_zero_only=args.non_zero, csv_output=args.csv)
    elif args.command == 'vouchers':
        list_vouchers(ledger, csv_output=args.csv)
    elif args.command == 'transactions':
        list_transactions(ledger, csv_output=args.csv)
    elif args.command == 'summary':
        show_summary(ledger, csv_output=args.csv)


if __name__ == "__main__":
    main()
