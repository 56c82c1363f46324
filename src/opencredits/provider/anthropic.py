from opencredits.models import ProviderRegistration
from opencredits.provider.placeholder import PlaceholderProvider


class AnthropicProvider(PlaceholderProvider):
    registration = ProviderRegistration(
        provider_id="anthropic",
        name="Anthropic",
        short_name="AN",
        icon="🤖",
    )

    def key_looks_valid(self, api_key: "str") -> "bool":
        return api_key.startswith("sk-ant-")
