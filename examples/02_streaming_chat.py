import sys

from dotenv import load_dotenv

from convo_hub import ApiConfig, Conversation, RequestsTransport, TransportConfig
from convo_hub.utils.streaming import with_text_callback

load_dotenv()

def print_fragment(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()

def main():
    config = ApiConfig.from_env()
    conversation = Conversation(config, stream=True, on_unknown=lambda event: print(f"\n[unknown event {event.event_type}]"))

    with RequestsTransport(config=TransportConfig(timeout=120.0)) as transport:
        request = conversation.user_message("Write a haiku about streaming JSON.")
        result = conversation.handle_stream(with_text_callback(transport.stream(request), print_fragment))

    print(f"\n\nstop_reason={result.stop_reason}, output_tokens={result.usage.output_tokens}")

    # Save the conversation and pick it up later
    saved = conversation.to_json()
    restored = Conversation.from_json(config, saved)
    print(f"Restored {restored.message_count} messages")

if __name__ == "__main__":
    main()
