from opencredits.models import ProviderRegistration
from opencredits.provider.placeholder import PlaceholderProvider

# Gemini keys carry no fixed prefix, only a length is checked
_MIN_KEY_LENGTH = 20


class GeminiProvider(PlaceholderProvider):
    registration = ProviderRegistration(
        provider_id="gemini",
        name="Gemini",
        short_name="GM",
        icon="⭐",
    )

    def key_looks_valid(self, api_key: "str") -> "bool":
        return len(api_key) >= _MIN_KEY_LENGTH
