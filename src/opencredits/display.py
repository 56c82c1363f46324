from typing import Mapping, Sequence

from opencredits.models import CreditInfo, ProviderRegistration

TOOLTIP_HEADER = "OpenCredits - API Credit Monitor"
TOOLTIP_FOOTER: "tuple[str, ...]" = (
    "Send SIGUSR1 to refresh credits",
    "Send SIGHUP to check provider configuration",
)

# summary lists at most this many providers
MAX_SUMMARY_ENTRIES = 3


def format_consumption_rate(credit: "CreditInfo") -> "str | None":
    """
    renders a positive consumption rate as "-$0.50/hr". Returns
    None when there is no rate or the balance is not going down.
    """
    rate = credit.consumption_rate
    if rate is None or rate <= 0:
        return None

    if rate < 0.01:
        return f"-{credit.currency}{rate:.4f}/hr"
    return f"-{credit.currency}{rate:.2f}/hr"


def format_display_text(
    providers: "Sequence[ProviderRegistration]",
    results: "Mapping[str, CreditInfo]",
) -> "str":
    """
    reduces a refresh cycle to a single summary line. Only valid
    (error-free) results are listed:
     - none: "N Credit Errors", N being the number of providers
     - one: "OpenRouter: $5.20 (-$0.50/hr)"
     - more: "OR: $5.20 | OA: $10.50", first three in order
    """
    valid: "list[tuple[ProviderRegistration, CreditInfo]]" = []
    for provider in providers:
        credit = results.get(provider.provider_id)
        if credit is not None and credit.is_valid:
            valid.append((provider, credit))

    if not valid:
        count = len(providers)
        return "1 Credit Error" if count == 1 else f"{count} Credit Errors"

    if len(valid) == 1:
        provider, credit = valid[0]
        rate_text = format_consumption_rate(credit)
        if rate_text:
            return f"{provider.name}: {credit.balance} ({rate_text})"
        return f"{provider.name}: {credit.balance}"

    return " | ".join(
        f"{provider.short_name}: {credit.balance}"
        for provider, credit in valid[:MAX_SUMMARY_ENTRIES]
    )


def format_tooltip(
    providers: "Sequence[ProviderRegistration]",
    results: "Mapping[str, CreditInfo]",
    footer: "Sequence[str]" = TOOLTIP_FOOTER,
) -> "str":
    lines = [TOOLTIP_HEADER, ""]

    for provider in providers:
        label = f"{provider.icon} {provider.name}"
        credit = results.get(provider.provider_id)

        if credit is None:
            lines.append(f"{label}: No data")
        elif not credit.is_valid:
            lines.append(f"{label}: Error - {credit.error}")
        else:
            updated = credit.last_updated.astimezone().strftime("%H:%M:%S")
            line = f"{label}: {credit.balance} ({updated})"
            rate_text = format_consumption_rate(credit)
            if rate_text:
                line += f" {rate_text}"
            lines.append(line)

    if providers:
        lines.append("")
        lines.extend(footer)

    return "\n".join(lines)


def reduce_display(
    providers: "Sequence[ProviderRegistration]",
    results: "Mapping[str, CreditInfo]",
) -> "tuple[str, str]":
    return format_display_text(providers, results), format_tooltip(providers, results)
