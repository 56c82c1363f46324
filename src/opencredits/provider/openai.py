from opencredits.models import ProviderRegistration
from opencredits.provider.placeholder import PlaceholderProvider


class OpenAIProvider(PlaceholderProvider):
    """
    OpenAIProvider has no public credit balance endpoint to read
    from, so it reports a placeholder result.
    """

    registration = ProviderRegistration(
        provider_id="openai",
        name="OpenAI",
        short_name="OA",
        icon="🧠",
    )

    def key_looks_valid(self, api_key: "str") -> "bool":
        return api_key.startswith("sk-")
