from .money import to_money, percentage, round_ratio
from .periods import bucket_key, academic_year_window
from .csv_export import render_csv

__all__ = [
    'to_money',
    'percentage',
    'round_ratio',
    'bucket_key',
    'academic_year_window',
    'render_csv',
]
