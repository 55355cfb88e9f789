"""
================================================================================
SOCIALNET - URL CONFIGURATION
================================================================================

@file        urls.py
@description JSON API routing for the social network
@version     1.0.0

MODULE PURPOSE
================================================================================
Maps every /api/ endpoint to its view function. Mounted under "api/" by
socialnet/urls.py, so the paths below are relative to /api/.

URL STRUCTURE OVERVIEW
================================================================================
1. Authentication (register, login)
2. Profile (own profile, search, uploads, other profiles, follow lists)
3. Posts (feeds, create, detail/edit/delete)
4. Likes (toggle, like/unlike, check)
5. Comments (create, list per post, edit/delete)
6. Follow (follow, unfollow, requests, accept/decline, status)
7. Groups (CRUD, membership, group chat)
8. Direct Messages (send, conversation, conversation list, detail)

Literal segments ("search", "mine", "requests", ...) are listed before the
<str:username> patterns that would otherwise capture them.

URL PARAMETER TYPES
================================================================================
- <str:username>: User handle
- <int:post_id>, <int:group_id>, <int:message_id>: Primary keys
- <int:pk>: Post id for GET, comment id for PUT/DELETE (comments)

SECURITY CONSIDERATIONS
================================================================================
- Every view except register/login is wrapped in @api_login_required
- CSRF is exempt: clients authenticate with a bearer token, not cookies
- Visibility and ownership are checked in network/permissions.py

TESTING
================================================================================
    from django.urls import reverse
    url = reverse('post_detail', kwargs={'post_id': 1})
    # Returns: '/api/posts/1'

================================================================================
"""

from django.urls import path

from . import views


urlpatterns = [

    # ========================================================================
    # SECTION 1: AUTHENTICATION
    # ========================================================================

    path("auth/register", views.register, name="register"),
    path("auth/login", views.login_view, name="login"),


    # ========================================================================
    # SECTION 2: PROFILE
    # ========================================================================

    path("profile", views.profile, name="profile"),
    path("profile/search", views.search_users, name="search_users"),
    path("profile/upload_image", views.upload_profile_image, name="upload_profile_image"),
    path("profile/<str:username>", views.user_profile, name="user_profile"),
    path("profile/<str:username>/followers", views.followers_list, name="followers_list"),
    path("profile/<str:username>/following", views.following_list, name="following_list"),


    # ========================================================================
    # SECTION 3: POSTS
    # ========================================================================

    path("posts", views.posts, name="posts"),
    path("posts/mine", views.my_posts, name="my_posts"),
    path("posts/following", views.following_posts, name="following_posts"),
    path("posts/by_owner/<str:username>", views.posts_by_owner, name="posts_by_owner"),
    path("posts/<int:post_id>", views.post_detail, name="post_detail"),


    # ========================================================================
    # SECTION 4: LIKES
    # ========================================================================

    path("likes/toggle/<int:post_id>", views.toggle_like, name="toggle_like"),
    path("likes/check/<int:post_id>", views.check_like, name="check_like"),
    path("likes/<int:post_id>", views.like, name="like"),


    # ========================================================================
    # SECTION 5: COMMENTS
    # ========================================================================

    path("comments", views.add_comment, name="add_comment"),
    path("comments/<int:pk>", views.comments, name="comments"),


    # ========================================================================
    # SECTION 6: FOLLOW
    # ========================================================================

    path("follow/requests", views.follow_requests, name="follow_requests"),
    path("follow/unfollow/<str:username>", views.unfollow, name="unfollow"),
    path("follow/accept/<str:username>", views.accept_follow, name="accept_follow"),
    path("follow/decline/<str:username>", views.decline_follow, name="decline_follow"),
    path("follow/status/<str:username>", views.follow_status, name="follow_status"),
    path("follow/<str:username>", views.follow, name="follow"),


    # ========================================================================
    # SECTION 7: GROUPS
    # ========================================================================

    path("groups", views.groups, name="groups"),
    path("groups/<int:group_id>", views.group_detail, name="group_detail"),
    path("groups/<int:group_id>/join", views.join_group, name="join_group"),
    path("groups/<int:group_id>/requests", views.group_requests, name="group_requests"),
    path("groups/<int:group_id>/accept/<str:username>", views.accept_member, name="accept_member"),
    path("groups/<int:group_id>/members", views.group_members, name="group_members"),
    path("groups/<int:group_id>/members/<str:username>", views.remove_member, name="remove_member"),
    path("groups/<int:group_id>/messages", views.group_messages, name="group_messages"),
    path(
        "groups/<int:group_id>/messages/<int:message_id>",
        views.delete_group_message,
        name="delete_group_message"
    ),


    # ========================================================================
    # SECTION 8: DIRECT MESSAGES
    # ========================================================================

    path("direct_messages/send/<str:username>", views.send_direct_message, name="send_direct_message"),
    path("direct_messages/conversation/<str:username>", views.conversation, name="conversation"),
    path("direct_messages/conversations", views.conversations, name="conversations"),
    path("direct_messages/<int:message_id>", views.direct_message_detail, name="direct_message_detail"),
]
