from unittest.mock import patch

from network import services
from network.exceptions import Conflict, ContentRejected, Forbidden, ValidationFailed
from network.models import Group, GroupMember, GroupMessage, MemberStatus
from network.moderation import KeywordModerator
from network.realtime import GROUP_MESSAGE_DELETED, RECEIVE_GROUP_MESSAGE, group_key, subscriptions

from .base import ApiTestCase, make_user


class GroupServiceTests(ApiTestCase):
    """Group membership state machine"""

    def setUp(self):
        self.owner = make_user("owner")
        self.member = make_user("member")
        self.outsider = make_user("outsider")
        self.moderator = KeywordModerator(["idiot"])
        self.group = services.create_group(self.owner, self.moderator, "Hikers", "Weekend trips")

    def test_owner_is_accepted_member(self):
        membership = GroupMember.objects.get(group=self.group, user=self.owner)
        self.assertEqual(membership.status, MemberStatus.ACCEPTED)

    def test_join_is_pending_until_owner_accepts(self):
        membership = services.join_group(self.member, self.group)
        self.assertEqual(membership.status, MemberStatus.PENDING)
        with self.assertRaises(Conflict):
            services.join_group(self.member, self.group)

        with self.assertRaises(Forbidden):
            services.accept_member(self.outsider, self.group, self.member)

        services.accept_member(self.owner, self.group, self.member)
        membership.refresh_from_db()
        self.assertEqual(membership.status, MemberStatus.ACCEPTED)

        with self.assertRaises(Conflict):
            services.accept_member(self.owner, self.group, self.member)

    def test_owner_cannot_leave(self):
        with self.assertRaises(ValidationFailed):
            services.remove_member(self.owner, self.group, self.owner)
        self.assertTrue(GroupMember.objects.filter(group=self.group, user=self.owner).exists())

    def test_only_owner_removes_others(self):
        services.join_group(self.member, self.group)
        services.accept_member(self.owner, self.group, self.member)
        services.join_group(self.outsider, self.group)
        services.accept_member(self.owner, self.group, self.outsider)

        with self.assertRaises(Forbidden):
            services.remove_member(self.outsider, self.group, self.member)

        services.remove_member(self.owner, self.group, self.member)
        services.remove_member(self.outsider, self.group, self.outsider)
        self.assertEqual(
            list(GroupMember.objects.filter(group=self.group).values_list("user__username", flat=True)),
            ["owner"],
        )

    def test_pending_member_cannot_post(self):
        services.join_group(self.member, self.group)
        with self.assertRaises(Forbidden):
            services.send_group_message(self.member, self.moderator, self.group, "hello")

    def test_group_name_is_moderated(self):
        with self.assertRaises(ContentRejected):
            services.create_group(self.owner, self.moderator, "idiot club", "")

    def test_message_delete_rights(self):
        services.join_group(self.member, self.group)
        services.accept_member(self.owner, self.group, self.member)
        services.join_group(self.outsider, self.group)
        services.accept_member(self.owner, self.group, self.outsider)
        message = services.send_group_message(self.member, self.moderator, self.group, "hi all")

        with self.assertRaises(Forbidden):
            services.delete_group_message(self.outsider, message)
        services.delete_group_message(self.owner, message)
        self.assertFalse(GroupMessage.objects.exists())


class GroupApiTests(ApiTestCase):
    """Group endpoints and group chat"""

    def setUp(self):
        self.owner = make_user("owner")
        self.member = make_user("member")
        self.outsider = make_user("outsider")
        self.owner_client = self.client_for(self.owner)
        self.member_client = self.client_for(self.member)
        self.outsider_client = self.client_for(self.outsider)

        response = self.send(self.owner_client, "post", "/api/groups", {"name": "Hikers", "description": "Trips"})
        self.assertEqual(response.status_code, 201)
        self.group_id = response.json()["id"]

    def join_and_accept(self, client, username):
        self.send(client, "post", f"/api/groups/{self.group_id}/join")
        self.send(self.owner_client, "put", f"/api/groups/{self.group_id}/accept/{username}")

    def test_list_groups_shows_membership(self):
        self.send(self.member_client, "post", f"/api/groups/{self.group_id}/join")
        groups = self.send(self.member_client, "get", "/api/groups").json()["groups"]
        self.assertEqual(groups[0]["member_status"], "Pending")
        self.assertFalse(groups[0]["is_user_member"])
        self.assertEqual(groups[0]["owner"]["username"], "owner")

    def test_duplicate_join_is_409(self):
        self.send(self.member_client, "post", f"/api/groups/{self.group_id}/join")
        response = self.send(self.member_client, "post", f"/api/groups/{self.group_id}/join")
        self.assertEqual(response.status_code, 409)

    def test_requests_are_owner_only(self):
        self.send(self.member_client, "post", f"/api/groups/{self.group_id}/join")
        response = self.send(self.outsider_client, "get", f"/api/groups/{self.group_id}/requests")
        self.assertEqual(response.status_code, 403)
        response = self.send(self.owner_client, "get", f"/api/groups/{self.group_id}/requests")
        self.assertEqual([r["user"]["username"] for r in response.json()["requests"]], ["member"])

    def test_members_lists_accepted_only(self):
        self.join_and_accept(self.member_client, "member")
        self.send(self.outsider_client, "post", f"/api/groups/{self.group_id}/join")
        response = self.send(self.outsider_client, "get", f"/api/groups/{self.group_id}/members")
        self.assertEqual(
            [m["username"] for m in response.json()["members"]], ["owner", "member"]
        )

    def test_owner_leave_is_400(self):
        response = self.send(self.owner_client, "delete", f"/api/groups/{self.group_id}/members/owner")
        self.assertEqual(response.status_code, 400)

    def test_message_round_trip_in_send_order(self):
        """Sent messages come back with content and sender, oldest first"""
        self.join_and_accept(self.member_client, "member")
        url = f"/api/groups/{self.group_id}/messages"

        with patch.object(subscriptions, "publish") as publish:
            with self.captureOnCommitCallbacks(execute=True):
                first = self.send(self.member_client, "post", url, {"content": "first"})
            with self.captureOnCommitCallbacks(execute=True):
                second = self.send(self.owner_client, "post", url, {"content": "second"})

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(publish.call_count, 2)
        key, event, data = publish.call_args_list[0].args
        self.assertEqual(key, f"group_{self.group_id}")
        self.assertEqual(event, RECEIVE_GROUP_MESSAGE)
        self.assertEqual(data["content"], "first")

        messages = self.send(self.member_client, "get", url).json()["messages"]
        self.assertEqual(
            [(m["content"], m["user"]["username"]) for m in messages],
            [("first", "member"), ("second", "owner")],
        )

    def test_non_member_cannot_read_or_send(self):
        url = f"/api/groups/{self.group_id}/messages"
        self.assertEqual(self.send(self.outsider_client, "get", url).status_code, 403)
        self.assertEqual(self.send(self.outsider_client, "post", url, {"content": "hi"}).status_code, 403)

    def test_unsafe_group_message_rejected(self):
        url = f"/api/groups/{self.group_id}/messages"
        with patch.object(subscriptions, "publish") as publish:
            response = self.send(self.owner_client, "post", url, {"content": "stupid"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(GroupMessage.objects.exists())
        publish.assert_not_called()

    def test_delete_message_pushes_event(self):
        self.join_and_accept(self.member_client, "member")
        message = services.send_group_message(self.member, KeywordModerator(), Group.objects.get(pk=self.group_id), "oops")

        with patch.object(subscriptions, "publish") as publish:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.send(
                    self.member_client, "delete", f"/api/groups/{self.group_id}/messages/{message.id}"
                )
        self.assertEqual(response.status_code, 200)
        publish.assert_called_once_with(
            f"group_{self.group_id}", GROUP_MESSAGE_DELETED, {"id": message.id, "group_id": self.group_id}
        )

    def test_delete_group_owner_only(self):
        url = f"/api/groups/{self.group_id}"
        self.assertEqual(self.send(self.member_client, "delete", url).status_code, 403)
        self.assertEqual(self.send(self.owner_client, "delete", url).status_code, 200)
        self.assertEqual(self.send(self.owner_client, "get", url).status_code, 404)

    def test_removed_member_loses_live_subscription(self):
        self.join_and_accept(self.member_client, "member")
        key = group_key(self.group_id)
        subscriptions.subscribe(key, "member-socket", user_id=self.member.id)
        subscriptions.subscribe(key, "owner-socket", user_id=self.owner.id)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.send(self.owner_client, "delete", f"/api/groups/{self.group_id}/members/member")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(subscriptions.subscribers(key), {"owner-socket"})

    def test_deleting_group_closes_its_key(self):
        key = group_key(self.group_id)
        subscriptions.subscribe(key, "owner-socket", user_id=self.owner.id)

        with self.captureOnCommitCallbacks(execute=True):
            self.send(self.owner_client, "delete", f"/api/groups/{self.group_id}")
        self.assertEqual(subscriptions.subscribers(key), set())
