"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    SessionDisplay,
    console,
    create_histogram,
    print_client_info,
    print_config,
    print_final_results,
    print_header,
    print_history,
    print_interrupted,
)
from .output import (
    append_csv,
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

__all__ = [
    "SessionDisplay",
    "append_csv",
    "console",
    "create_histogram",
    "create_result_json",
    "format_csv_header",
    "format_csv_row",
    "format_text_result",
    "print_client_info",
    "print_config",
    "print_final_results",
    "print_header",
    "print_history",
    "print_interrupted",
    "save_json",
]
