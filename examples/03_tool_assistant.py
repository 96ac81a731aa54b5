from datetime import datetime, timezone

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from convo_hub import ApiConfig, Conversation, RequestsTransport, ToolExecutor, tool_from_model

load_dotenv()

executor = ToolExecutor()

@executor.tool(description="Return the current UTC date and time in ISO 8601 format")
def current_time() -> str:
    return datetime.now(timezone.utc).isoformat()

class ConvertInput(BaseModel):
    celsius: float = Field(description="Temperature in degrees Celsius")

def to_fahrenheit(celsius: float) -> dict:
    return {"fahrenheit": celsius * 9 / 5 + 32}

executor.register(tool_from_model("to_fahrenheit", "Convert Celsius to Fahrenheit", ConvertInput), to_fahrenheit)

def main():
    config = ApiConfig.from_env()
    conversation = Conversation(config, tools=executor.tools)

    with RequestsTransport() as transport:
        request = conversation.user_message("What time is it now, and what is 21.5C in Fahrenheit?")
        result = conversation.handle_response(transport.send(request))

        # Run requested tools until the model answers in plain text
        while result.requires_tool_results:
            for tool_use in result.tool_uses:
                print(f"calling {tool_use.name}({tool_use.input})")
            results = executor.execute_all(result.tool_uses)
            request = conversation.tool_results(results)
            result = conversation.handle_response(transport.send(request))

    print(result.text)
    print(f"{conversation.message_count} messages in history")

if __name__ == "__main__":
    main()
