from django.core.files.uploadedfile import SimpleUploadedFile

from network import services
from network.exceptions import Forbidden
from network.models import Comment, Like, Post
from network.moderation import KeywordModerator

from .base import ApiTestCase, make_post, make_user, png_upload


class PostApiTests(ApiTestCase):
    """Creating, reading, editing and deleting posts"""

    def setUp(self):
        self.alice = make_user("alice", private=True)
        self.bob = make_user("bob")
        self.carol = make_user("carol")
        self.admin = make_user("root", staff=True)

    def test_create_post_with_image(self):
        client = self.client_for(self.bob)
        response = client.post("/api/posts", {"image": png_upload(), "description": "Sunset"})
        self.assertEqual(response.status_code, 201)
        data = response.json()
        post = Post.objects.get(pk=data["post_id"])
        self.assertEqual(post.description, "Sunset")
        self.assertTrue(post.image_path.startswith("/media/img/posts/"))
        self.assertTrue(post.image_path.endswith(".png"))
        self.assertEqual(data["image_url"], post.image_path)

    def test_create_post_requires_image(self):
        client = self.client_for(self.bob)
        response = client.post("/api/posts", {"description": "No picture"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Post.objects.exists())

    def test_create_post_rejects_non_image_upload(self):
        client = self.client_for(self.bob)
        upload = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
        response = client.post("/api/posts", {"image": upload})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Post.objects.exists())

    def test_create_post_rejects_fake_image(self):
        client = self.client_for(self.bob)
        upload = SimpleUploadedFile("fake.png", b"not really a png", content_type="image/png")
        response = client.post("/api/posts", {"image": upload})
        self.assertEqual(response.status_code, 400)

    def test_unsafe_description_is_rejected(self):
        client = self.client_for(self.bob)
        response = client.post("/api/posts", {"image": png_upload(), "description": "you idiot"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Post.objects.exists())

    def test_feed_hides_private_posts_from_strangers(self):
        make_post(self.alice, "secret")
        make_post(self.bob, "public")

        response = self.send(self.client_for(self.carol), "get", "/api/posts")
        self.assertEqual([p["description"] for p in response.json()["posts"]], ["public"])

        services.follow_user(self.carol, self.alice)
        services.accept_follow_request(self.alice, self.carol)
        response = self.send(self.client_for(self.carol), "get", "/api/posts")
        self.assertEqual(
            sorted(p["description"] for p in response.json()["posts"]), ["public", "secret"]
        )

    def test_feed_count_is_capped(self):
        for i in range(55):
            make_post(self.bob, f"post {i}")
        response = self.send(self.client_for(self.carol), "get", "/api/posts", {"count": 500})
        self.assertEqual(len(response.json()["posts"]), 50)

        response = self.send(self.client_for(self.carol), "get", "/api/posts", {"count": 10, "skip": 50})
        self.assertEqual(len(response.json()["posts"]), 5)

    def test_following_feed_only_lists_accepted_follows(self):
        make_post(self.alice, "alice post")
        make_post(self.bob, "bob post")
        services.follow_user(self.carol, self.bob)
        services.follow_user(self.carol, self.alice)

        response = self.send(self.client_for(self.carol), "get", "/api/posts/following")
        self.assertEqual([p["description"] for p in response.json()["posts"]], ["bob post"])

    def test_private_post_detail(self):
        post = make_post(self.alice)
        url = f"/api/posts/{post.id}"
        self.assertEqual(self.send(self.client_for(self.carol), "get", url).status_code, 403)
        self.assertEqual(self.send(self.client_for(self.alice), "get", url).status_code, 200)
        self.assertEqual(self.send(self.client_for(self.admin), "get", url).status_code, 200)

    def test_posts_by_private_owner_forbidden(self):
        make_post(self.alice)
        response = self.send(self.client_for(self.carol), "get", "/api/posts/by_owner/alice")
        self.assertEqual(response.status_code, 403)

    def test_edit_post_owner_only(self):
        post = make_post(self.bob, "first")
        url = f"/api/posts/{post.id}"
        response = self.send(self.client_for(self.carol), "put", url, {"description": "hijack"})
        self.assertEqual(response.status_code, 403)

        response = self.send(self.client_for(self.bob), "put", url, {"description": "second"})
        self.assertEqual(response.status_code, 200)
        post.refresh_from_db()
        self.assertEqual(post.description, "second")

    def test_delete_post_by_owner_or_admin(self):
        post = make_post(self.bob)
        services.set_like(self.carol, post, True)
        services.add_comment(self.carol, KeywordModerator(), post, "nice")

        url = f"/api/posts/{post.id}"
        self.assertEqual(self.send(self.client_for(self.carol), "delete", url).status_code, 403)
        self.assertEqual(self.send(self.client_for(self.admin), "delete", url).status_code, 200)
        self.assertFalse(Post.objects.filter(pk=post.id).exists())
        self.assertFalse(Like.objects.exists())
        self.assertFalse(Comment.objects.exists())

    def test_unknown_post_is_404_json(self):
        response = self.send(self.client_for(self.bob), "get", "/api/posts/9999")
        self.assertEqual(response.status_code, 404)
        self.assertIn("error", response.json())


class LikeTests(ApiTestCase):
    """Likes and the like_count counter"""

    def setUp(self):
        self.alice = make_user("alice", private=True)
        self.bob = make_user("bob")
        self.carol = make_user("carol")
        self.post = make_post(self.bob)

    def test_toggle_twice_returns_to_zero(self):
        client = self.client_for(self.carol)
        url = f"/api/likes/toggle/{self.post.id}"

        response = self.send(client, "post", url)
        self.assertEqual(response.json(), {"is_liked": True, "like_count": 1})
        response = self.send(client, "post", url)
        self.assertEqual(response.json(), {"is_liked": False, "like_count": 0})
        self.assertPostCountersConsistent(self.post)

    def test_like_twice_is_a_no_op(self):
        services.set_like(self.carol, self.post, True)
        liked, count = services.set_like(self.carol, self.post, True)
        self.assertTrue(liked)
        self.assertEqual(count, 1)
        self.assertPostCountersConsistent(self.post)

    def test_unlike_twice_is_a_no_op(self):
        services.set_like(self.carol, self.post, True)
        services.set_like(self.carol, self.post, False)
        liked, count = services.set_like(self.carol, self.post, False)
        self.assertFalse(liked)
        self.assertEqual(count, 0)
        self.assertPostCountersConsistent(self.post)

    def test_put_and_delete_endpoints(self):
        client = self.client_for(self.carol)
        url = f"/api/likes/{self.post.id}"
        self.assertEqual(self.send(client, "put", url).json()["like_count"], 1)
        self.assertEqual(self.send(client, "put", url).json()["like_count"], 1)
        self.assertEqual(self.send(client, "delete", url).json()["like_count"], 0)
        self.assertEqual(self.send(client, "delete", url).json()["like_count"], 0)

    def test_check_and_has_liked_in_representation(self):
        client = self.client_for(self.carol)
        self.assertFalse(self.send(client, "get", f"/api/likes/check/{self.post.id}").json()["is_liked"])
        services.set_like(self.carol, self.post, True)
        self.assertTrue(self.send(client, "get", f"/api/likes/check/{self.post.id}").json()["is_liked"])

        data = self.send(client, "get", f"/api/posts/{self.post.id}").json()
        self.assertTrue(data["has_liked"])
        self.assertEqual(data["like_count"], 1)

        other = self.send(self.client_for(self.bob), "get", f"/api/posts/{self.post.id}").json()
        self.assertFalse(other["has_liked"])

    def test_cannot_like_invisible_post(self):
        private_post = make_post(self.alice)
        with self.assertRaises(Forbidden):
            services.toggle_like(self.carol, private_post)
        response = self.send(self.client_for(self.carol), "post", f"/api/likes/toggle/{private_post.id}")
        self.assertEqual(response.status_code, 403)
        self.assertPostCountersConsistent(private_post)

    def test_many_users_liking_keeps_counter_exact(self):
        users = [make_user(f"fan{i}") for i in range(6)]
        for user in users:
            services.toggle_like(user, self.post)
        for user in users[:2]:
            services.toggle_like(user, self.post)
        self.post.refresh_from_db()
        self.assertEqual(self.post.like_count, 4)
        self.assertPostCountersConsistent(self.post)
