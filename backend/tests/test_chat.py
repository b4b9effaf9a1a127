"""End-to-end tests for the real-time chat WebSocket.

Every test opens its sockets through one TestClient context (the
``api_client`` fixture) so that they share the server's event loop and
broadcast router.

Frames are ``{"event": ..., "data": ...}`` in both directions.
"""
import pytest

from supportchat.store.service import MessageStore


def login(client, username):
    response = client.post("/login", json={"username": username})
    assert response.status_code == 200
    return response.json()


def send(ws, event, **data):
    ws.send_json({"event": event, "data": data})


def expect(ws, event):
    """Receive the next frame and check its event name."""
    frame = ws.receive_json()
    assert frame["event"] == event, frame
    return frame["data"]


def join(ws, room_id, label):
    send(ws, "join-room", username=label, roomId=room_id)
    return expect(ws, "message-history")


@pytest.fixture
def chat(api_client):
    """Logged-in customer and the admin's IDs plus the room."""
    ctx = login(api_client, "alice")
    return {
        "client": api_client,
        "customer_id": ctx["user"]["id"],
        "admin_id": ctx["admin"]["id"],
        "room_id": ctx["roomId"],
    }


def customer_says(ws, chat, content):
    send(
        ws, "send-message",
        senderId=chat["customer_id"], receiverId=chat["admin_id"],
        content=content, roomId=chat["room_id"],
    )


def admin_says(ws, chat, content):
    send(
        ws, "send-message",
        senderId=chat["admin_id"], receiverId=chat["customer_id"],
        content=content, roomId=chat["room_id"],
    )


def test_scenario_a_message_reaches_room_and_dashboard(chat):
    """Customer message: room gets message-received, every socket gets admin-alert."""
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws, \
         client.websocket_connect("/ws/chat") as dashboard_ws:

        assert join(customer_ws, chat["room_id"], "Customer") == []
        assert join(admin_ws, chat["room_id"], "Admin") == []

        customer_says(customer_ws, chat, "Hello")

        received = expect(admin_ws, "message-received")
        assert received["content"] == "Hello"
        assert received["read"] is False
        assert received["edited"] is False
        assert received["type"] == "text"
        assert received["senderId"] == chat["customer_id"]
        assert received["senderUsername"] == "alice"
        assert expect(admin_ws, "admin-alert") == {
            "customerId": chat["customer_id"], "hasUnread": True,
        }

        assert expect(customer_ws, "message-received") == received
        expect(customer_ws, "admin-alert")

        # Not joined to the room, still alerted
        assert expect(dashboard_ws, "admin-alert") == {
            "customerId": chat["customer_id"], "hasUnread": True,
        }


def test_scenario_b_read_receipt_skips_reader(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        customer_says(customer_ws, chat, "Anyone there?")
        message = expect(admin_ws, "message-received")
        expect(admin_ws, "admin-alert")
        expect(customer_ws, "message-received")
        expect(customer_ws, "admin-alert")

        send(admin_ws, "mark-as-read", roomId=chat["room_id"], userId=chat["admin_id"])

        assert expect(customer_ws, "messages-read") == {"readerId": chat["admin_id"]}

        # The next frame the admin sees answers this ping, not a receipt
        send(admin_ws, "ping")
        expect(admin_ws, "error")

        stored = MessageStore.get_instance().find_message_by_id(message["id"])
        assert stored.read is True


def test_scenario_c_delete_before_read(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        customer_says(customer_ws, chat, "oops")
        message = expect(customer_ws, "message-received")
        expect(customer_ws, "admin-alert")
        expect(admin_ws, "message-received")
        expect(admin_ws, "admin-alert")

        send(customer_ws, "delete-message", messageId=message["id"], userId=chat["customer_id"])

        assert expect(customer_ws, "message-deleted") == {"messageId": message["id"]}
        assert expect(admin_ws, "message-deleted") == {"messageId": message["id"]}

    with client.websocket_connect("/ws/chat") as later_ws:
        assert join(later_ws, chat["room_id"], "Customer") == []

    assert MessageStore.get_instance().find_message_by_id(message["id"]).deleted is True


def test_scenario_d_read_message_cannot_be_deleted(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        customer_says(customer_ws, chat, "read me")
        message = expect(customer_ws, "message-received")
        expect(customer_ws, "admin-alert")
        expect(admin_ws, "message-received")
        expect(admin_ws, "admin-alert")

        send(admin_ws, "mark-as-read", roomId=chat["room_id"], userId=chat["admin_id"])
        expect(customer_ws, "messages-read")

        send(customer_ws, "delete-message", messageId=message["id"], userId=chat["customer_id"])
        assert expect(customer_ws, "error") == {"message": "Cannot delete message that has been read"}

        send(admin_ws, "delete-message", messageId=message["id"],
             userId=chat["admin_id"], isAdmin=True)
        assert expect(admin_ws, "error") == {"message": "Cannot delete message that has been read"}

    assert MessageStore.get_instance().find_message_by_id(message["id"]).deleted is False


def test_scenario_e_admin_edits_read_message(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        admin_says(admin_ws, chat, "Your order shiped")
        from_admin = expect(admin_ws, "message-received")
        expect(customer_ws, "message-received")

        send(customer_ws, "mark-as-read", roomId=chat["room_id"], userId=chat["customer_id"])
        assert expect(admin_ws, "messages-read") == {"readerId": chat["customer_id"]}

        send(admin_ws, "edit-message", messageId=from_admin["id"],
             newContent="Your order shipped", userId=chat["admin_id"], isAdmin=True)
        edited = {"messageId": from_admin["id"], "newContent": "Your order shipped", "edited": True}
        assert expect(admin_ws, "message-edited") == edited
        assert expect(customer_ws, "message-edited") == edited

        # The same edit is refused for a customer once the admin has read it
        customer_says(customer_ws, chat, "Thanks!")
        from_customer = expect(customer_ws, "message-received")
        expect(customer_ws, "admin-alert")
        expect(admin_ws, "message-received")
        expect(admin_ws, "admin-alert")

        send(admin_ws, "mark-as-read", roomId=chat["room_id"], userId=chat["admin_id"])
        expect(customer_ws, "messages-read")

        send(customer_ws, "edit-message", messageId=from_customer["id"],
             newContent="Thanks a lot!", userId=chat["customer_id"], isAdmin=False)
        assert expect(customer_ws, "error") == {"message": "Cannot edit message that has been read"}


def test_send_image_message(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws:
        join(customer_ws, chat["room_id"], "Customer")
        send(customer_ws, "send-image", senderId=chat["customer_id"],
             receiverId=chat["admin_id"], imageUrl="/uploads/image-1.png",
             roomId=chat["room_id"])
        received = expect(customer_ws, "message-received")
        assert received["type"] == "image"
        assert received["content"] == "/uploads/image-1.png"


def test_history_on_join_is_ordered(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws:
        join(customer_ws, chat["room_id"], "Customer")
        for text in ("first", "second", "third"):
            customer_says(customer_ws, chat, text)
            expect(customer_ws, "message-received")
            expect(customer_ws, "admin-alert")

    with client.websocket_connect("/ws/chat") as admin_ws:
        history = join(admin_ws, chat["room_id"], "Admin")
        assert [m["content"] for m in history] == ["first", "second", "third"]


def test_edit_by_non_author_is_unauthorized(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        customer_says(customer_ws, chat, "mine")
        message = expect(customer_ws, "message-received")
        expect(customer_ws, "admin-alert")
        expect(admin_ws, "message-received")
        expect(admin_ws, "admin-alert")

        send(admin_ws, "edit-message", messageId=message["id"], newContent="theirs",
             userId=chat["admin_id"], isAdmin=True)
        assert expect(admin_ws, "error") == {"message": "Unauthorized to edit this message"}


def test_edit_missing_message(chat):
    with chat["client"].websocket_connect("/ws/chat") as ws:
        send(ws, "edit-message", messageId="missing", newContent="x", userId=chat["customer_id"])
        assert expect(ws, "error") == {"message": "Message not found"}


def test_room_mismatch_is_reported_to_sender_only(chat):
    client = chat["client"]
    with client.websocket_connect("/ws/chat") as customer_ws, \
         client.websocket_connect("/ws/chat") as admin_ws:
        join(customer_ws, chat["room_id"], "Customer")
        join(admin_ws, chat["room_id"], "Admin")

        send(customer_ws, "send-message", senderId=chat["customer_id"],
             receiverId=chat["admin_id"], content="hi", roomId="wrong-room")
        assert "message" in expect(customer_ws, "error")

        send(admin_ws, "ping")
        expect(admin_ws, "error")


def test_joining_second_room_is_rejected(chat):
    other_room = login(chat["client"], "bob")["roomId"]
    with chat["client"].websocket_connect("/ws/chat") as ws:
        join(ws, chat["room_id"], "Customer")
        send(ws, "join-room", username="Customer", roomId=other_room)
        assert expect(ws, "error")["message"].startswith("Connection already joined room")


def test_unknown_room_does_not_lock_connection(chat):
    with chat["client"].websocket_connect("/ws/chat") as ws:
        send(ws, "join-room", username="Customer", roomId="typo-room")
        assert expect(ws, "error") == {"message": "Unknown room: typo-room"}

        assert join(ws, chat["room_id"], "Customer") == []


def test_invalid_frames_keep_connection_open(chat):
    with chat["client"].websocket_connect("/ws/chat") as ws:
        ws.send_text("not json")
        assert expect(ws, "error") == {"message": "Invalid JSON"}

        ws.send_json(["not", "an", "object"])
        assert expect(ws, "error") == {"message": "Invalid frame"}

        send(ws, "teleport")
        assert expect(ws, "error") == {"message": "Unknown event: teleport"}

        send(ws, "send-message", content="missing ids")
        assert expect(ws, "error") == {"message": "Invalid send-message payload"}

        # Still usable
        assert join(ws, chat["room_id"], "Customer") == []
