"""
Commit summary notifications.

The commit engine hands its CommitSummary to a CommitNotifier once a batch
is COMPLETED. Delivery (SMS, chat, email) belongs to whoever implements
the notifier; this module only formats the seller-facing text.

Usage:
    from integrations.notifications import format_commit_summary

    text = format_commit_summary(summary, lang="ny")
"""

from typing import Optional
import structlog

from models.bulk_upload import CommitSummary

logger = structlog.get_logger(__name__)

MAX_LISTED = 10

MESSAGES = {
    "en": {
        "commit_summary": """Bulk upload complete

Listings created: {committed}
New catalog products: {new_products}
Need specs: {needs_specs}
Need images: {needs_images}
Skipped (duplicates): {skipped}
Invalid rows: {invalid}
Failed: {failed}""",

        "listing_line": "- {product_name} ({sku}) {status}{new_flag}",
        "new_flag": " [new product]",
        "more_listings": "...and {count} more",
        "failures_hint": "Download the correction file to fix rows that did not upload.",
    },
    "ny": {
        "commit_summary": """Kutsitsa katundu kwatha

Zinthu zomwe zalembedwa: {committed}
Zinthu zatsopano m'kabuku: {new_products}
Zikufunika zambiri: {needs_specs}
Zikufunika zithunzi: {needs_images}
Zadumphidwa (zobwerezabwereza): {skipped}
Mizere yolakwika: {invalid}
Zalephera: {failed}""",

        "listing_line": "- {product_name} ({sku}) {status}{new_flag}",
        "new_flag": " [chatsopano]",
        "more_listings": "...ndi zina {count}",
        "failures_hint": "Tsitsani fayilo yokonza kuti mukonze mizere yomwe sinalowe.",
    },
}


def get_message(key: str, lang: str = "en", **kwargs) -> str:
    """Template for key in lang (English fallback), formatted with kwargs."""
    lang_messages = MESSAGES.get(lang, MESSAGES["en"])
    template = lang_messages.get(key, MESSAGES["en"].get(key, key))
    try:
        return template.format(**kwargs)
    except KeyError:
        return template


def format_commit_summary(summary: CommitSummary, lang: str = "en") -> str:
    """
    Seller-facing report of a finished commit.

    Lists up to ten created listings; points at the correction file when
    any row was skipped, invalid or failed.
    """
    lines = [
        get_message(
            "commit_summary",
            lang,
            committed=summary.committed,
            new_products=summary.new_products,
            needs_specs=summary.needs_specs,
            needs_images=summary.needs_images,
            skipped=summary.skipped,
            invalid=summary.invalid,
            failed=summary.failed,
        )
    ]

    if summary.listings:
        lines.append("")
        for listing in summary.listings[:MAX_LISTED]:
            lines.append(get_message(
                "listing_line",
                lang,
                product_name=listing.product_name,
                sku=listing.sku,
                status=listing.listing_status.value,
                new_flag=get_message("new_flag", lang) if listing.is_new_product else "",
            ))
        if len(summary.listings) > MAX_LISTED:
            lines.append(get_message("more_listings", lang, count=len(summary.listings) - MAX_LISTED))

    if summary.skipped or summary.invalid or summary.failed:
        lines.append("")
        lines.append(get_message("failures_hint", lang))

    return "\n".join(lines)


class CommitNotifier:
    """Receives the summary of every completed commit."""

    def notify(self, summary: CommitSummary) -> None:
        raise NotImplementedError


class LoggingNotifier(CommitNotifier):
    """Writes the formatted summary to the log."""

    def __init__(self, lang: str = "en"):
        self.lang = lang

    def notify(self, summary: CommitSummary) -> None:
        logger.info(
            "commit_summary_ready",
            batch_id=summary.batch_id,
            shop_id=summary.shop_id,
            committed=summary.committed,
            failed=summary.failed,
            message=format_commit_summary(summary, self.lang)
        )


def notify_safely(notifier: Optional[CommitNotifier], summary: CommitSummary) -> bool:
    """
    Call the notifier, logging instead of raising on failure.

    Returns:
        True if the notifier ran without error
    """
    if notifier is None:
        return False
    try:
        notifier.notify(summary)
        return True
    except Exception as e:
        logger.error(
            "commit_notification_failed",
            batch_id=summary.batch_id,
            error=str(e)
        )
        return False
