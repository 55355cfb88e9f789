from datetime import timedelta

import jwt
from django.conf import settings
from django.test import Client

from network.auth import DjangoCredentialVerifier, TokenService
from network.exceptions import AuthenticationFailed
from network.models import Follow, User

from .base import PASSWORD, ApiTestCase, make_user, png_upload


class TokenServiceTests(ApiTestCase):
    """Issuing and decoding bearer tokens"""

    def setUp(self):
        self.user = make_user("alice")
        self.tokens = TokenService.from_settings()

    def test_round_trip_claims(self):
        payload = self.tokens.decode(self.tokens.issue(self.user))
        self.assertEqual(payload["sub"], str(self.user.id))
        self.assertEqual(payload["username"], "alice")
        self.assertEqual(payload["role"], "User")
        self.assertEqual(payload["type"], "access_token")
        self.assertEqual(payload["exp"] - payload["iat"], 24 * 60 * 60)

    def test_staff_token_has_admin_role(self):
        admin = make_user("root", staff=True)
        self.assertEqual(self.tokens.decode(self.tokens.issue(admin))["role"], "Admin")

    def test_expired_token_rejected(self):
        expired = TokenService(
            settings.JWT_SECRET, settings.JWT_ISSUER, settings.JWT_AUDIENCE, timedelta(seconds=-60)
        )
        with self.assertRaises(AuthenticationFailed):
            self.tokens.decode(expired.issue(self.user))

    def test_wrong_signature_rejected(self):
        forged = jwt.encode(
            {"sub": str(self.user.id), "type": "access_token"}, "another-secret-of-sufficient-length", algorithm="HS256"
        )
        with self.assertRaises(AuthenticationFailed):
            self.tokens.decode(forged)

    def test_wrong_token_type_rejected(self):
        payload = self.tokens.decode(self.tokens.issue(self.user))
        payload["type"] = "refresh_token"
        token = jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")
        with self.assertRaises(AuthenticationFailed):
            self.tokens.decode(token)

    def test_inactive_user_cannot_resolve(self):
        token = self.tokens.issue(self.user)
        User.objects.filter(pk=self.user.pk).update(is_active=False)
        with self.assertRaises(AuthenticationFailed):
            self.tokens.resolve_user(token)


class CredentialVerifierTests(ApiTestCase):

    def setUp(self):
        self.user = make_user("alice")
        self.verifier = DjangoCredentialVerifier()

    def test_username_or_email(self):
        self.assertEqual(self.verifier.verify("alice", PASSWORD), self.user)
        self.assertEqual(self.verifier.verify("ALICE@example.com", PASSWORD), self.user)

    def test_bad_credentials(self):
        self.assertIsNone(self.verifier.verify("alice", "wrong"))
        self.assertIsNone(self.verifier.verify("nobody", PASSWORD))
        self.assertIsNone(self.verifier.verify("", ""))


class AuthApiTests(ApiTestCase):
    """Register, login and the bearer token boundary"""

    def registration(self, **overrides):
        data = {
            "first_name": "Dana",
            "last_name": "Scully",
            "username": "dana",
            "email": "dana@example.com",
            "password": "Tr0ub4dor&3-horse",
            "confirm_password": "Tr0ub4dor&3-horse",
        }
        data.update(overrides)
        return data

    def test_register_returns_token(self):
        response = self.send(Client(), "post", "/api/auth/register", self.registration())
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["username"], "dana")
        self.assertEqual(data["role"], "User")
        self.assertEqual(data["profile_picture_url"], "/assets/img/no_user.png")
        self.assertEqual(TokenService.from_settings().decode(data["token"])["username"], "dana")

    def test_register_conflicts(self):
        make_user("dana")
        response = self.send(Client(), "post", "/api/auth/register", self.registration())
        self.assertEqual(response.status_code, 409)

        response = self.send(
            Client(), "post", "/api/auth/register",
            self.registration(username="other", email="DANA@example.com"),
        )
        self.assertEqual(response.status_code, 409)

    def test_register_validation(self):
        response = self.send(
            Client(), "post", "/api/auth/register", self.registration(confirm_password="different")
        )
        self.assertEqual(response.status_code, 400)

        response = self.send(
            Client(), "post", "/api/auth/register", self.registration(password="123", confirm_password="123")
        )
        self.assertEqual(response.status_code, 400)

        response = self.send(Client(), "post", "/api/auth/register", self.registration(first_name="x" * 51))
        self.assertEqual(response.status_code, 400)
        self.assertFalse(User.objects.exists())

    def test_login(self):
        make_user("alice")
        response = self.send(Client(), "post", "/api/auth/login", {"username_or_email": "alice", "password": PASSWORD})
        self.assertEqual(response.status_code, 200)
        self.assertIn("token", response.json())

        response = self.send(Client(), "post", "/api/auth/login", {"username_or_email": "alice", "password": "nope"})
        self.assertEqual(response.status_code, 401)

    def test_missing_or_bad_token_is_401(self):
        self.assertEqual(Client().get("/api/profile").status_code, 401)
        bad = Client(headers={"Authorization": "Bearer not.a.jwt"})
        self.assertEqual(bad.get("/api/profile").status_code, 401)
        malformed = Client(headers={"Authorization": "Token abc"})
        self.assertEqual(malformed.get("/api/profile").status_code, 401)

    def test_session_cookie_does_not_authenticate_api(self):
        alice = make_user("alice", staff=True)
        make_user("bob")
        client = Client(enforce_csrf_checks=True)
        client.force_login(alice)

        self.assertEqual(client.post("/api/follow/bob").status_code, 401)
        self.assertEqual(client.get("/api/profile").status_code, 401)
        self.assertFalse(Follow.objects.exists())

    def test_invalid_json_is_400(self):
        response = Client().post("/api/auth/login", "{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)


class ProfileApiTests(ApiTestCase):
    """Own profile, other profiles, search and account deletion"""

    def setUp(self):
        self.alice = make_user("alice", private=True)
        self.bob = make_user("bob")
        self.alice_client = self.client_for(self.alice)
        self.bob_client = self.client_for(self.bob)

    def test_email_only_on_own_profile(self):
        own = self.send(self.alice_client, "get", "/api/profile").json()
        self.assertEqual(own["email"], "alice@example.com")

        other = self.send(self.bob_client, "get", "/api/profile/alice").json()
        self.assertNotIn("email", other)
        self.assertFalse(other["can_view"])
        self.assertEqual(other["follow_status"], "None")

    def test_update_profile(self):
        response = self.send(
            self.bob_client, "put", "/api/profile",
            {"username": "bobby", "description": "Hello there", "is_private": True},
        )
        self.assertEqual(response.status_code, 200)
        self.bob.refresh_from_db()
        self.assertEqual(self.bob.username, "bobby")
        self.assertTrue(self.bob.is_private)

    def test_username_taken_is_409(self):
        response = self.send(self.bob_client, "put", "/api/profile", {"username": "ALICE"})
        self.assertEqual(response.status_code, 409)

    def test_unsafe_description_is_400(self):
        response = self.send(self.bob_client, "put", "/api/profile", {"description": "stupid people"})
        self.assertEqual(response.status_code, 400)
        self.bob.refresh_from_db()
        self.assertEqual(self.bob.description, "")

    def test_search(self):
        for i in range(35):
            make_user(f"searchable{i}")
        response = self.send(self.bob_client, "get", "/api/profile/search", {"q": "searchable"})
        self.assertEqual(len(response.json()["results"]), 30)
        response = self.send(self.bob_client, "get", "/api/profile/search", {"q": ""})
        self.assertEqual(response.json()["results"], [])

    def test_upload_profile_image(self):
        response = self.bob_client.post("/api/profile/upload_image", {"image": png_upload("me.png")})
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["file_path"].startswith("/media/img/profile/"))

    def test_delete_account(self):
        self.send(self.bob_client, "post", "/api/follow/alice")
        response = self.send(self.bob_client, "delete", "/api/profile")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(User.objects.filter(username="bob").exists())
        self.assertFalse(Follow.objects.exists())
