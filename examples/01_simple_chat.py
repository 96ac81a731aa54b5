from dotenv import load_dotenv

from convo_hub import ApiConfig, Conversation, RequestsTransport
from convo_hub.utils.logging import configure_logging

load_dotenv()

def main():
    configure_logging()
    config = ApiConfig.from_env()
    conversation = Conversation(config, system="You are a concise assistant.")

    with RequestsTransport() as transport:
        for question in ["What is the capital of France?", "And roughly how many people live there?"]:
            request = conversation.user_message(question)
            result = conversation.handle_response(transport.send(request))
            print(f"> {question}\n{result.text}\n")

    print(f"Total tokens: {conversation.usage.total_tokens}")

if __name__ == "__main__":
    main()
