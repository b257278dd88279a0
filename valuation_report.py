"""
Reporting for the valuation engine.

Turns the engine's audit trail into DataFrames and saves them to an Excel
workbook: valuation history, fee events, owed balances and a summary.
Value columns are rendered as decimal strings since 18-decimal integers do
not fit a spreadsheet's float cells.
"""

import os
import logging
from datetime import datetime
from typing import Dict, Optional

from openpyxl.utils import get_column_letter
import pandas as pd

from fixed_point import format_value
from vault import Vault


VALUE_COLUMNS = [
    'untracked_value', 'total_value', 'management_fee', 'performance_fee',
    'total_owed', 'share_supply', 'share_value', 'value', 'total_owed_after',
    'owed', 'share_price', 'high_water_mark', 'net_value', 'shares',
]


def format_value_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy with every known value column rendered as a decimal string."""
    result = df.copy()
    for col in VALUE_COLUMNS:
        if col in result.columns:
            result[col] = result[col].map(lambda v: format_value(int(v)) if pd.notna(v) else '')
    if 'timestamp' in result.columns:
        result.insert(
            1, 'time',
            pd.to_datetime(result['timestamp'].astype('int64'), unit='s', utc=True).dt.strftime('%Y-%m-%d %H:%M:%S'),
        )
    return result


def build_summary_df(vault: Vault) -> pd.DataFrame:
    summary = vault.get_summary()
    rows = []
    for metric, value in summary.items():
        if metric in ('share_value', 'share_price', 'total_supply', 'total_owed', 'high_water_mark'):
            value = format_value(value)
        rows.append({'Metric': metric, 'Value': value})
    return pd.DataFrame(rows)


def build_report(vault: Vault) -> Dict[str, pd.DataFrame]:
    """All report sheets keyed by sheet name."""
    return {
        'Summary': build_summary_df(vault),
        'Valuations': format_value_columns(vault.valuation.get_history_df()),
        'Fee Events': format_value_columns(vault.fee_ledger.get_history_df()),
        'Owed': format_value_columns(vault.fee_ledger.get_owed_df()),
    }


def save_valuation_results(vault: Vault, output_dir: str = 'results', events: Optional[pd.DataFrame] = None) -> str:
    """
    Save the vault's report to a timestamped Excel workbook.

    Args:
        vault: Vault to report on
        output_dir: Directory to write into (created if missing)
        events: Optional replayed event log to include as its own sheet

    Returns:
        Path of the written workbook
    """
    logging.info(f"Saving valuation results to {output_dir}")
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    os.makedirs(output_dir, exist_ok=True)
    report_file = os.path.join(output_dir, f'{vault.name}_valuation_{timestamp}.xlsx')

    sheets = build_report(vault)
    if events is not None:
        sheets['Events'] = events

    with pd.ExcelWriter(report_file, engine='openpyxl') as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            worksheet = writer.sheets[sheet_name]
            # Widen every column; value strings are long
            for idx, col in enumerate(df.columns, start=1):
                letter = get_column_letter(idx)
                worksheet.column_dimensions[letter].width = max(14, min(40, len(str(col)) + 24))

    logging.info(f"- Report: {os.path.basename(report_file)}")
    return report_file
