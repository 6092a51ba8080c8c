"""Minimal walkthrough of the Perplexity client: ask, options, chat, models."""

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, BusinessError, ConfigurationError
from chat_core.domain.models import ChatMessage, CompletionOptions
from chat_core.providers import create_provider


def main() -> None:
    try:
        client = create_provider()
    except ConfigurationError:
        print("Please set PERPLEXITY_API_KEY in the .env file")
        raise SystemExit(1)
    print("Using API key:", client.masked_api_key)

    try:
        question = "What is the capital of France?"
        print("Question:", question)
        print("Answer:", client.ask(question))

        question = "Explain quantum computing in simple terms and give me 3 practical applications."
        print("Question:", question)
        print("Answer:", client.ask(question, CompletionOptions(max_tokens=500, temperature=0.7)))

        messages = [
            ChatMessage(role="system", content="You are a helpful assistant that explains technical concepts clearly."),
            ChatMessage(role="user", content="What is machine learning?"),
        ]
        result = client.complete(messages, CompletionOptions(model=settings.default_model, max_tokens=300, temperature=0.3))
        print("Response:", result.text)
        print("Usage:", result.usage)

        try:
            models = client.list_models()
            print("Available models:", [m.get("id") for m in models.get("data", [])][:5])
        except BusinessError as e:
            print("Models endpoint might not be available:", e.message)
    except ApiError as e:
        print("Error:", e.message)
        if e.extra.get("status") == 401:
            print("This usually means your API key is invalid or not set correctly.")


if __name__ == "__main__":
    main()
