"""Shared Rich display functions for pass results, receipts and the queue.

Provides reusable table builders and summary printers used by the sync,
install, uninstall, freeze and puppies commands.
"""

from datetime import datetime

from rich.markup import escape
from rich.table import Table

from fleetsync.models.action import ActionResult, ActionType, SyncReport
from fleetsync.models.puppy import PuppyQueueEntry
from fleetsync.models.receipt import Receipt
from fleetsync.utils.formatting import console, print_info, print_json, print_success

# Action type -> theme style used for its label.
_ACTION_STYLES: dict[ActionType, str] = {
    ActionType.INSTALL: "installed",
    ActionType.UPDATE: "updated",
    ActionType.ROLLBACK: "rolled_back",
    ActionType.REINSTALL: "installed",
    ActionType.QUEUE: "queued",
    ActionType.UNINSTALL: "removed",
    ActionType.EXPIRE: "removed",
    ActionType.RECEIPT_UPDATE: "muted",
    ActionType.RECEIPT_REMOVE: "removed",
    ActionType.DEQUEUE: "queued",
    ActionType.FREEZE: "frozen",
    ActionType.THAW: "frozen",
}


def _format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def create_results_table(results: list[ActionResult]) -> Table:
    """Create a Rich table displaying pass results.

    Successful results show "OK", skipped ones "SKIP" with the reason, and
    failed ones "FAIL" with the error category.

    Args:
        results: Results to display, in pass order.

    Returns:
        Rich Table configured for results display.
    """
    table = Table(
        title="Results",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Status", width=6, justify="center")
    table.add_column("Action", width=14)
    table.add_column("Title", no_wrap=True)
    table.add_column("Package", justify="right")
    table.add_column("Message")

    for result in results:
        if result.succeeded:
            status = "[success]OK[/success]"
            message = result.message or ""
        elif result.skipped:
            status = "[warning]SKIP[/warning]"
            reason = result.skip_reason.value if result.skip_reason else ""
            message = f"{reason}: {result.message}" if result.message else reason
        else:
            status = "[error]FAIL[/error]"
            category = result.category.value if result.category else "error"
            message = f"[{category}] {result.message or 'Unknown error'}"

        style = _ACTION_STYLES.get(result.action, "text")
        table.add_row(
            status,
            f"[{style}]{result.action.value}[/{style}]",
            result.title,
            str(result.package_id) if result.package_id is not None else "",
            escape(message),
        )

    return table


def print_report_summary(report: SyncReport) -> None:
    """Print the end-of-pass summary line.

    Skipped results are broken down by reason so frozen and piloted titles
    are distinguishable from failures.
    """
    if not report.results:
        print_success("Nothing to do; this machine is up to date.")
        return

    succeeded = len(report.succeeded)
    failed = len(report.failed)
    if failed == 0 and not report.skipped:
        print_success(f"All {succeeded} action(s) completed successfully.")
        return

    reasons: dict[str, int] = {}
    for result in report.skipped:
        key = result.skip_reason.value if result.skip_reason else "other"
        reasons[key] = reasons.get(key, 0) + 1

    parts = [f"[success]{succeeded} succeeded[/success]"]
    if reasons:
        detail = ", ".join(f"{count} {reason}" for reason, count in sorted(reasons.items()))
        parts.append(f"[warning]{len(report.skipped)} skipped[/warning] ({detail})")
    parts.append(f"[error]{failed} failed[/error]" if failed else "0 failed")
    console.print("\nSummary: " + ", ".join(parts))


def create_receipts_table(receipts: list[Receipt]) -> Table:
    """Create a Rich table listing installed titles."""
    table = Table(
        title="Installed Titles",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Title", no_wrap=True)
    table.add_column("Version")
    table.add_column("Package", justify="right")
    table.add_column("Status")
    table.add_column("Admin")
    table.add_column("Installed")
    table.add_column("Flags")

    for receipt in receipts:
        flags: list[str] = []
        if receipt.frozen:
            flags.append("[frozen]frozen[/frozen]")
        if receipt.manual:
            flags.append("manual")
        if not receipt.removable:
            flags.append("not-removable")
        if receipt.expiration:
            custom = "*" if receipt.custom_expiration else ""
            flags.append(f"expires {receipt.expiration}d{custom}")

        status_style = "pilot" if receipt.is_pilot else "text"
        table.add_row(
            f"[title.name]{receipt.title}[/title.name]",
            f"[title.version]{receipt.version}[/title.version]",
            str(receipt.package_id),
            f"[{status_style}]{receipt.status.value}[/{status_style}]",
            receipt.admin,
            _format_time(receipt.installed_at),
            " ".join(flags),
        )

    return table


def create_puppies_table(entries: list[PuppyQueueEntry]) -> Table:
    """Create a Rich table listing queued reboot-required installs."""
    table = Table(
        title="Puppy Queue",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Title", no_wrap=True)
    table.add_column("Version")
    table.add_column("Package", justify="right")
    table.add_column("Admin")
    table.add_column("Queued")
    table.add_column("Options")

    for entry in entries:
        options: list[str] = []
        if entry.force:
            options.append("force")
        if entry.expiration is not None:
            options.append(f"expires {entry.expiration}d")
        table.add_row(
            f"[queued]{entry.title}[/queued]",
            entry.version,
            str(entry.package_id),
            entry.admin,
            _format_time(entry.queued_at),
            " ".join(options),
        )

    return table


def print_report(report: SyncReport, json_output: bool = False) -> None:
    """Print a report as a results table plus summary, or as JSON."""
    if json_output:
        print_json(report.to_dict())
        return
    if report.results:
        console.print(create_results_table(report.results))
    else:
        print_info("No changes.")
    print_report_summary(report)
