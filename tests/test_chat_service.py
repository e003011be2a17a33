import asyncio

import pytest

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.chat import MessageType, RoomPriority, RoomStatus
from app.models.user import UserRole
from app.services.chat_service import ChatService


def run(coro):
    return asyncio.run(coro)


async def open_room(service, user, **kwargs):
    room, _ = await service.create_or_get_active_room(user.id, user.role, **kwargs)
    return room


def system_messages(repos, room_id):
    messages = run(repos.messages.list_in_room(room_id, limit=100))
    return [m for m in messages if m.message_type == MessageType.SYSTEM]


def test_create_room_defaults(service, users):
    room, created = run(service.create_or_get_active_room(users.customer.id, UserRole.CUSTOMER))

    assert created
    assert room.status == RoomStatus.WAITING
    assert room.assigned_staff_id is None
    assert room.subject == "Customer Support"
    assert room.priority == RoomPriority.MEDIUM


def test_create_room_reuses_open_room(service, users):
    async def scenario():
        first, created_first = await service.create_or_get_active_room(
            users.customer.id, UserRole.CUSTOMER, subject="Hamster cage"
        )
        second, created_second = await service.create_or_get_active_room(
            users.customer.id, UserRole.CUSTOMER, subject="Something else"
        )
        return first, created_first, second, created_second

    first, created_first, second, created_second = run(scenario())

    assert created_first and not created_second
    assert first.id == second.id
    assert second.subject == "Hamster cage"


def test_create_room_after_close_opens_new_room(service, users):
    async def scenario():
        first = await open_room(service, users.customer)
        await service.close_room(first.id, users.customer.id, UserRole.CUSTOMER)
        second, created = await service.create_or_get_active_room(users.customer.id, UserRole.CUSTOMER)
        return first, second, created

    first, second, created = run(scenario())
    assert created
    assert second.id != first.id


def test_only_customers_create_rooms(service, users):
    with pytest.raises(AuthorizationError):
        run(service.create_or_get_active_room(users.staff.id, UserRole.STAFF))


def test_assign_activates_room_with_one_system_message(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        return await service.assign_room(room.id, users.staff.id, UserRole.STAFF, users.staff.username)

    room, message = run(scenario())

    assert room.status == RoomStatus.ACTIVE
    assert room.assigned_staff_id == users.staff.id
    assert message.content == "sam has joined the chat"
    assert [m.id for m in system_messages(repos, room.id)] == [message.id]


def test_reassign_to_same_staff_is_noop(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")
        return await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")

    room, message = run(scenario())

    assert message is None
    assert room.assigned_staff_id == users.staff.id
    assert len(system_messages(repos, room.id)) == 1


def test_second_staff_cannot_take_assigned_room(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")
        with pytest.raises(ValidationError):
            await service.assign_room(room.id, users.other_staff.id, UserRole.STAFF, "tina")
        return await repos.rooms.get(room.id)

    room = run(scenario())

    assert room.assigned_staff_id == users.staff.id
    assert room.status == RoomStatus.ACTIVE
    assert len(system_messages(repos, room.id)) == 1


def test_customers_cannot_assign(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.assign_room(room.id, users.customer.id, UserRole.CUSTOMER, "alice")

    with pytest.raises(AuthorizationError):
        run(scenario())


def test_assign_missing_room(service, users):
    with pytest.raises(NotFoundError):
        run(service.assign_room("507f1f77bcf86cd799439011", users.staff.id, UserRole.STAFF, "sam"))


class InterleavingRooms:
    """Yields to the event loop after every read so concurrent callers interleave"""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def get(self, room_id):
        room = await self._inner.get(room_id)
        await asyncio.sleep(0)
        return room


def test_concurrent_assignment_has_single_winner(repos, users):
    service = ChatService(InterleavingRooms(repos.rooms), repos.messages, repos.users)

    async def scenario():
        room = await open_room(service, users.customer)
        results = await asyncio.gather(
            service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam"),
            service.assign_room(room.id, users.other_staff.id, UserRole.STAFF, "tina"),
            return_exceptions=True,
        )
        return room.id, results

    room_id, results = run(scenario())

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, ValidationError)]
    assert len(winners) == 1 and len(losers) == 1

    stored = run(repos.rooms.get(room_id))
    assert stored.assigned_staff_id == winners[0][0].assigned_staff_id
    assert len(system_messages(repos, room_id)) == 1


def test_close_room_posts_reason(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        return await service.close_room(room.id, users.customer.id, UserRole.CUSTOMER, "Solved, thanks")

    room, message = run(scenario())

    assert room.status == RoomStatus.CLOSED
    assert room.closed_by == users.customer.id
    assert room.close_reason == "Solved, thanks"
    assert message.content == "Room closed: Solved, thanks"
    assert message.message_type == MessageType.SYSTEM


def test_close_without_reason(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        return await service.close_room(room.id, users.admin.id, UserRole.ADMIN)

    _, message = run(scenario())
    assert message.content == "Room has been closed"


def test_closing_closed_room_is_rejected(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.close_room(room.id, users.customer.id, UserRole.CUSTOMER)
        with pytest.raises(ValidationError):
            await service.close_room(room.id, users.customer.id, UserRole.CUSTOMER)
        return room.id

    room_id = run(scenario())
    assert len(system_messages(repos, room_id)) == 1


def test_unassigned_staff_cannot_close(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")
        await service.close_room(room.id, users.other_staff.id, UserRole.STAFF)

    with pytest.raises(AuthorizationError):
        run(scenario())


def test_assigning_closed_room_is_rejected(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.close_room(room.id, users.customer.id, UserRole.CUSTOMER)
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")

    with pytest.raises(ValidationError):
        run(scenario())


def test_send_message_validation(service, users):
    async def scenario():
        room = await open_room(service, users.customer)

        with pytest.raises(ValidationError):
            await service.send_message(room.id, users.customer.id, "   ")
        with pytest.raises(ValidationError):
            await service.send_message(room.id, users.customer.id, "hi", MessageType.SYSTEM)
        with pytest.raises(NotFoundError):
            await service.send_message("507f1f77bcf86cd799439011", users.customer.id, "hi")

        await service.close_room(room.id, users.customer.id, UserRole.CUSTOMER)
        with pytest.raises(ValidationError):
            await service.send_message(room.id, users.customer.id, "anyone there?")

    run(scenario())


def test_send_message_trims_and_bumps_room(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        message = await service.send_message(room.id, users.customer.id, "  My cat won't eat  ")
        return room, message, await repos.rooms.get(room.id)

    before, message, after = run(scenario())

    assert message.content == "My cat won't eat"
    assert after.last_message_at >= before.last_message_at
    assert after.last_message_at == message.created_at


def test_history_is_chronological_and_access_checked(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        for text in ("first", "second", "third"):
            await service.send_message(room.id, users.customer.id, text)

        history = await service.get_history(room.id, users.customer.id, UserRole.CUSTOMER)

        with pytest.raises(AuthorizationError):
            await service.get_history(room.id, users.other_customer.id, UserRole.CUSTOMER)

        return history

    history = run(scenario())

    assert [m.content for m in history.messages] == ["first", "second", "third"]
    assert history.pagination.total == 3
    assert history.unread_count == 0
    assert history.messages[0].sender.username == "alice"


def test_history_pages_walk_backwards(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        for i in range(5):
            await service.send_message(room.id, users.customer.id, f"msg {i}")
        return await service.get_history(room.id, users.customer.id, UserRole.CUSTOMER, page=1, limit=2)

    history = run(scenario())

    assert [m.content for m in history.messages] == ["msg 3", "msg 4"]
    assert history.pagination.pages == 3
    assert history.pagination.has_next


def test_mark_read_is_idempotent(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        message = await service.send_message(room.id, users.customer.id, "hello?")
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")

        first = await service.mark_read(message.id, users.staff.id, UserRole.STAFF)
        second = await service.mark_read(message.id, users.staff.id, UserRole.STAFF)
        return first, second, await repos.messages.get(message.id)

    first, second, stored = run(scenario())

    assert first is True
    assert second is False
    assert stored.is_read
    assert [r.user_id for r in stored.read_by] == [users.staff.id]


def test_sender_reading_own_message_does_not_mark_it_read(service, repos, users):
    async def scenario():
        room = await open_room(service, users.customer)
        message = await service.send_message(room.id, users.customer.id, "note to self")
        await service.mark_read(message.id, users.customer.id, UserRole.CUSTOMER)
        return await repos.messages.get(message.id)

    stored = run(scenario())
    assert not stored.is_read
    assert len(stored.read_by) == 1


def test_mark_read_requires_room_access(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        message = await service.send_message(room.id, users.customer.id, "private")
        await service.mark_read(message.id, users.other_customer.id, UserRole.CUSTOMER)

    with pytest.raises(AuthorizationError):
        run(scenario())


def test_unread_counts(service, users):
    async def scenario():
        room = await open_room(service, users.customer)
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")
        await service.send_message(room.id, users.staff.id, "How can I help?")
        reply = await service.send_message(room.id, users.staff.id, "Are you there?")

        before = await service.unread_summary(users.customer.id, UserRole.CUSTOMER)
        await service.mark_read(reply.id, users.customer.id, UserRole.CUSTOMER)
        after = await service.count_unread(room.id, users.customer.id)
        staff_summary = await service.unread_summary(users.staff.id, UserRole.STAFF)
        return room, before, after, staff_summary

    room, before, after, staff_summary = run(scenario())

    # The system "joined" message counts as unread for the customer too
    assert before.total_unread == 3
    assert before.rooms_with_unread[0].room_id == room.id
    assert after == 2
    assert staff_summary.total_unread == 0


def test_listing_is_role_scoped(service, users):
    async def scenario():
        mine = await open_room(service, users.customer)
        theirs = await open_room(service, users.other_customer)
        await service.assign_room(theirs.id, users.other_staff.id, UserRole.STAFF, "tina")

        customer_view = await service.list_rooms(users.customer.id, UserRole.CUSTOMER)
        staff_view = await service.list_rooms(users.staff.id, UserRole.STAFF)
        assigned_view = await service.list_rooms(users.other_staff.id, UserRole.STAFF, status_filter="assigned")
        admin_view = await service.list_rooms(users.admin.id, UserRole.ADMIN, view="all")
        return mine, theirs, customer_view, staff_view, assigned_view, admin_view

    mine, theirs, customer_view, staff_view, assigned_view, admin_view = run(scenario())

    assert [r.id for r in customer_view.rooms] == [mine.id]
    assert [r.id for r in staff_view.rooms] == [mine.id]
    assert [r.id for r in assigned_view.rooms] == [theirs.id]
    assert {r.id for r in admin_view.rooms} == {mine.id, theirs.id}
    assert assigned_view.rooms[0].last_message.content == "tina has joined the chat"


def test_pending_listing_is_fifo(service, users):
    async def scenario():
        older = await open_room(service, users.customer)
        newer = await open_room(service, users.other_customer)
        # Activity on the older room must not reorder the queue
        await service.send_message(older.id, users.customer.id, "still waiting")
        listing = await service.list_rooms(users.staff.id, UserRole.STAFF, status_filter="pending")
        pushed = await service.pending_rooms()
        return older, newer, listing, pushed

    older, newer, listing, pushed = run(scenario())

    assert [r.id for r in listing.rooms] == [older.id, newer.id]
    assert [r.id for r in pushed] == [older.id, newer.id]


def test_view_all_is_admin_only(service, users):
    with pytest.raises(AuthorizationError):
        run(service.list_rooms(users.staff.id, UserRole.STAFF, view="all"))


def test_invalid_status_filter(service, users):
    with pytest.raises(ValidationError):
        run(service.list_rooms(users.customer.id, UserRole.CUSTOMER, status_filter="archived"))


def test_support_conversation(service, repos, users):
    async def scenario():
        room, created = await service.create_or_get_active_room(users.customer.id, UserRole.CUSTOMER)
        assert created

        await service.send_message(room.id, users.customer.id, "Hello, my parrot is sick")
        await service.assign_room(room.id, users.staff.id, UserRole.STAFF, "sam")
        await service.send_message(room.id, users.staff.id, "Sorry to hear that, what symptoms?")
        await service.close_room(room.id, users.staff.id, UserRole.STAFF, "Referred to vet")

        return await service.get_history(room.id, users.customer.id, UserRole.CUSTOMER)

    history = run(scenario())

    assert [(m.message_type, m.content) for m in history.messages] == [
        (MessageType.TEXT, "Hello, my parrot is sick"),
        (MessageType.SYSTEM, "sam has joined the chat"),
        (MessageType.TEXT, "Sorry to hear that, what symptoms?"),
        (MessageType.SYSTEM, "Room closed: Referred to vet"),
    ]
    assert history.room.status == RoomStatus.CLOSED
