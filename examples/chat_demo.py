"""Minimal demonstration of a chat turn through the service facade."""

from chat_core.api.service import list_conversations, run_chat, save_and_reset

if __name__ == "__main__":
    question = "Explain in two sentences what a server-sent event stream is."
    reply = run_chat(question)
    print("User:", question)
    print("Assistant:", (reply["assistant_message"] or {}).get("content"))
    print("Title:", reply["title"])
    save_and_reset()
    print("Saved conversations:", len(list_conversations()))
