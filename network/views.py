"""
================================================================================
SOCIALNET - API VIEWS
================================================================================

@file        views.py
@description JSON endpoints for accounts, posts, likes, comments, follows,
             groups and direct messages
@version     1.0.0

MODULE PURPOSE
================================================================================
Thin HTTP layer over network/services.py. Each view parses the request,
loads the objects named in the URL, calls one service function and renders
the result with the representation helpers below.

REQUEST FLOW
================================================================================
1. BearerTokenMiddleware resolves request.user from the bearer token
2. @api_login_required answers 401 for anonymous callers
3. The view validates input (_json_body, _int_param) and calls a service
4. Domain errors propagate to ApiExceptionMiddleware, which renders
   {"error": message} with the matching status
5. Realtime pushes and subscription changes are queued with
   transaction.on_commit, so nothing is sent for a rolled-back write

RESPONSE CONVENTIONS
================================================================================
- Lists are wrapped in an object: {"posts": [...]}, {"groups": [...]}
- Creation answers 201, everything else 200
- Paged feeds take ?count= (default 10, capped at POSTS_MAX_PAGE_SIZE)
  and ?skip=
- has_liked and like_count always come from the server
- email appears only on the caller's own profile

================================================================================
"""

import functools
import json
import logging

from django.conf import settings
from django.db import transaction
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import media, permissions, services
from .auth import api_login_required, build_auth_payload, get_credential_verifier
from .exceptions import AuthenticationFailed, Forbidden, ValidationFailed
from .models import (
    Comment, DirectMessage, Follow, FollowStatus, Group, GroupMember,
    GroupMessage, Like, MemberStatus, Post, User,
)
from .moderation import get_moderator
from .realtime import (
    DIRECT_MESSAGE_DELETED, GROUP_MESSAGE_DELETED, RECEIVE_DIRECT_MESSAGE,
    RECEIVE_GROUP_MESSAGE, conversation_key, group_key, subscriptions,
)


# Logger
logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def _json_body(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationFailed("Invalid JSON body.") from None
    if not isinstance(data, dict):
        raise ValidationFailed("JSON body must be an object.")
    return data


def _int_param(request, name, default, minimum=0, maximum=None):
    raw = request.GET.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer.") from None
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def _page(request, queryset):
    count = _int_param(request, "count", 10, minimum=1, maximum=settings.POSTS_MAX_PAGE_SIZE)
    skip = _int_param(request, "skip", 0)
    return list(queryset[skip:skip + count])


def _active_user(username):
    return get_object_or_404(User, username=username, is_active=True)


def _push(key, event, data):
    """Push after the surrounding transaction commits."""
    transaction.on_commit(functools.partial(subscriptions.publish, key, event, data))


def _revoke(key, user_id=None):
    """Drop live subscriptions once the membership change commits."""
    if user_id is None:
        transaction.on_commit(functools.partial(subscriptions.close_key, key))
    else:
        transaction.on_commit(functools.partial(subscriptions.revoke_user, key, user_id))


def _user_summary(user):
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "profile_picture_url": user.profile_picture_url,
    }


def _profile(user, viewer):
    data = {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "description": user.description,
        "profile_picture_url": user.profile_picture_url,
        "is_private": user.is_private,
        "followers_count": user.followers_count,
        "following_count": user.following_count,
        "role": user.role,
        "date_joined": user.date_joined.isoformat(),
    }
    if viewer.id == user.id:
        data["email"] = user.email
    return data


def _liked_ids(viewer, posts):
    return set(
        Like.objects.filter(user_id=viewer.id, post_id__in=[p.id for p in posts])
        .values_list("post_id", flat=True)
    )


def _post(post, liked_ids):
    return {
        "id": post.id,
        "user": _user_summary(post.user),
        "description": post.description,
        "image_path": post.image_path,
        "created_at": post.created_at.isoformat(),
        "like_count": post.like_count,
        "comment_count": post.comment_count,
        "has_liked": post.id in liked_ids,
    }


def _posts(posts, viewer):
    liked = _liked_ids(viewer, posts)
    return [_post(p, liked) for p in posts]


def _comment(comment):
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "user": _user_summary(comment.user),
        "content": comment.content,
        "created_at": comment.created_at.isoformat(),
    }


def _group(group, statuses):
    status = statuses.get(group.id)
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "owner": _user_summary(group.owner),
        "created_at": group.created_at.isoformat(),
        "member_status": status,
        "is_user_member": status == MemberStatus.ACCEPTED,
    }


def _member_statuses(viewer, group_ids=None):
    memberships = GroupMember.objects.filter(user_id=viewer.id)
    if group_ids is not None:
        memberships = memberships.filter(group_id__in=group_ids)
    return dict(memberships.values_list("group_id", "status"))


def _group_message(message):
    return {
        "id": message.id,
        "group_id": message.group_id,
        "user": _user_summary(message.user),
        "content": message.content,
        "created_at": message.created_at.isoformat(),
    }


def _direct_message(message):
    return {
        "id": message.id,
        "sender": _user_summary(message.sender),
        "receiver": _user_summary(message.receiver),
        "content": message.content,
        "created_at": message.created_at.isoformat(),
    }


# ============================================================================
# AUTHENTICATION
# ============================================================================

@csrf_exempt
@require_POST
def register(request):
    data = _json_body(request)
    user = services.register_user(
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        username=data.get("username"),
        email=data.get("email"),
        password=data.get("password"),
        confirm_password=data.get("confirm_password"),
    )
    return JsonResponse(build_auth_payload(user), status=201)


@csrf_exempt
@require_POST
def login_view(request):
    data = _json_body(request)
    identifier = data.get("username_or_email") or data.get("username") or ""
    user = get_credential_verifier().verify(identifier, data.get("password", ""))
    if user is None:
        logger.info(f"Failed login for {identifier!r}")
        raise AuthenticationFailed("Invalid username or password.")
    return JsonResponse(build_auth_payload(user))


# ============================================================================
# PROFILE
# ============================================================================

@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@api_login_required
def profile(request):
    if request.method == "PUT":
        data = _json_body(request)
        user = services.update_profile(
            request.user,
            get_moderator(),
            username=data.get("username"),
            description=data.get("description"),
            is_private=data.get("is_private"),
            profile_picture_url=data.get("profile_picture_url"),
        )
        return JsonResponse({"message": "Profile updated.", "profile": _profile(user, user)})

    if request.method == "DELETE":
        services.delete_account(request.user)
        return JsonResponse({"message": "Account deleted."})

    user = User.objects.get(pk=request.user.id)
    return JsonResponse(_profile(user, user))


@require_GET
@api_login_required
def search_users(request):
    users = services.search_users(request.GET.get("q"))
    return JsonResponse({"results": [_user_summary(u) for u in users]})


@csrf_exempt
@require_POST
@api_login_required
def upload_profile_image(request):
    file_path = media.save_upload(request.FILES.get("image"), media.PROFILE_FOLDER)
    return JsonResponse({"file_path": file_path}, status=201)


@require_GET
@api_login_required
def user_profile(request, username):
    owner = _active_user(username)
    data = _profile(owner, request.user)
    data["follow_status"] = services.follow_status(request.user, owner)
    data["can_view"] = permissions.can_view_profile(request.user, owner)
    data["post_count"] = owner.posts.count()
    return JsonResponse(data)


@require_GET
@api_login_required
def followers_list(request, username):
    owner = _active_user(username)
    if not permissions.can_view_profile(request.user, owner):
        raise Forbidden("This profile is private.")
    edges = (
        Follow.objects.filter(followed_id=owner.id, status=FollowStatus.ACCEPTED)
        .select_related("follower")
        .order_by("-created_at")
    )
    return JsonResponse({"users": [_user_summary(e.follower) for e in edges]})


@require_GET
@api_login_required
def following_list(request, username):
    owner = _active_user(username)
    if not permissions.can_view_profile(request.user, owner):
        raise Forbidden("This profile is private.")
    edges = (
        Follow.objects.filter(follower_id=owner.id, status=FollowStatus.ACCEPTED)
        .select_related("followed")
        .order_by("-created_at")
    )
    return JsonResponse({"users": [_user_summary(e.followed) for e in edges]})


# ============================================================================
# POSTS
# ============================================================================

@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_login_required
def posts(request):
    if request.method == "POST":
        post = services.create_post(
            request.user,
            get_moderator(),
            request.FILES.get("image"),
            request.POST.get("description", ""),
        )
        return JsonResponse(
            {"message": "Post created.", "post_id": post.id, "image_url": post.image_path},
            status=201,
        )

    page = _page(request, services.visible_posts(request.user))
    return JsonResponse({"posts": _posts(page, request.user)})


@require_GET
@api_login_required
def my_posts(request):
    page = _page(request, Post.objects.select_related("user").filter(user_id=request.user.id))
    return JsonResponse({"posts": _posts(page, request.user)})


@require_GET
@api_login_required
def following_posts(request):
    page = _page(request, services.following_feed(request.user))
    return JsonResponse({"posts": _posts(page, request.user)})


@require_GET
@api_login_required
def posts_by_owner(request, username):
    owner = _active_user(username)
    if not permissions.can_view_profile(request.user, owner):
        raise Forbidden("This profile is private.")
    page = _page(request, Post.objects.select_related("user").filter(user_id=owner.id))
    return JsonResponse({"posts": _posts(page, request.user)})


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@api_login_required
def post_detail(request, post_id):
    post = get_object_or_404(Post.objects.select_related("user"), id=post_id)

    if request.method == "PUT":
        data = _json_body(request)
        post = services.update_post(request.user, get_moderator(), post, data.get("description", ""))
        return JsonResponse({"message": "Post updated.", "post": _posts([post], request.user)[0]})

    if request.method == "DELETE":
        image_path = services.delete_post(request.user, post)
        transaction.on_commit(functools.partial(media.delete_upload, image_path))
        return JsonResponse({"message": "Post deleted."})

    if not permissions.can_view_post(request.user, post):
        raise Forbidden("This post is private.")
    return JsonResponse(_posts([post], request.user)[0])


# ============================================================================
# LIKES
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def toggle_like(request, post_id):
    post = get_object_or_404(Post.objects.select_related("user"), id=post_id)
    is_liked, like_count = services.toggle_like(request.user, post)
    return JsonResponse({"is_liked": is_liked, "like_count": like_count})


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
@api_login_required
def like(request, post_id):
    post = get_object_or_404(Post.objects.select_related("user"), id=post_id)
    is_liked, like_count = services.set_like(request.user, post, request.method == "PUT")
    return JsonResponse({"is_liked": is_liked, "like_count": like_count})


@require_GET
@api_login_required
def check_like(request, post_id):
    post = get_object_or_404(Post, id=post_id)
    return JsonResponse({"is_liked": services.has_liked(request.user, post.id)})


# ============================================================================
# COMMENTS
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def add_comment(request):
    data = _json_body(request)
    try:
        post_id = int(data.get("post_id"))
    except (TypeError, ValueError):
        raise ValidationFailed("post_id must be an integer.") from None
    post = get_object_or_404(Post.objects.select_related("user"), id=post_id)
    comment = services.add_comment(request.user, get_moderator(), post, data.get("content"))
    return JsonResponse({"message": "Comment added.", "comment": _comment(comment)}, status=201)


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@api_login_required
def comments(request, pk):
    """GET lists the comments of post `pk`; PUT/DELETE act on comment `pk`."""
    if request.method == "GET":
        post = get_object_or_404(Post.objects.select_related("user"), id=pk)
        if not permissions.can_view_post(request.user, post):
            raise Forbidden("This post is private.")
        rows = Comment.objects.filter(post_id=post.id).select_related("user")
        return JsonResponse({"comments": [_comment(c) for c in rows]})

    comment = get_object_or_404(Comment.objects.select_related("user", "post"), id=pk)

    if request.method == "PUT":
        data = _json_body(request)
        comment = services.edit_comment(request.user, get_moderator(), comment, data.get("content"))
        return JsonResponse({"message": "Comment updated.", "comment": _comment(comment)})

    services.delete_comment(request.user, comment)
    return JsonResponse({"message": "Comment deleted."})


# ============================================================================
# FOLLOW
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def follow(request, username):
    target = _active_user(username)
    edge = services.follow_user(request.user, target)
    message = "Follow request sent." if edge.status == FollowStatus.PENDING else "You are now following this user."
    return JsonResponse({"message": message, "status": edge.status})


@csrf_exempt
@require_http_methods(["DELETE"])
@api_login_required
def unfollow(request, username):
    services.unfollow_user(request.user, _active_user(username))
    return JsonResponse({"message": "Unfollowed.", "status": "None"})


@require_GET
@api_login_required
def follow_requests(request):
    pending = services.pending_follow_requests(request.user)
    return JsonResponse({
        "requests": [
            {"user": _user_summary(f.follower), "created_at": f.created_at.isoformat()}
            for f in pending
        ]
    })


@csrf_exempt
@require_http_methods(["PUT"])
@api_login_required
def accept_follow(request, username):
    services.accept_follow_request(request.user, _active_user(username))
    return JsonResponse({"message": "Follow request accepted.", "status": FollowStatus.ACCEPTED})


@csrf_exempt
@require_http_methods(["DELETE"])
@api_login_required
def decline_follow(request, username):
    services.decline_follow_request(request.user, _active_user(username))
    return JsonResponse({"message": "Follow request declined."})


@require_GET
@api_login_required
def follow_status(request, username):
    target = _active_user(username)
    return JsonResponse({"status": services.follow_status(request.user, target)})


# ============================================================================
# GROUPS
# ============================================================================

@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_login_required
def groups(request):
    if request.method == "POST":
        data = _json_body(request)
        group = services.create_group(
            request.user, get_moderator(), data.get("name"), data.get("description", "")
        )
        group = Group.objects.select_related("owner").get(pk=group.pk)
        return JsonResponse(_group(group, {group.id: MemberStatus.ACCEPTED}), status=201)

    rows = Group.objects.select_related("owner")
    statuses = _member_statuses(request.user)
    return JsonResponse({"groups": [_group(g, statuses) for g in rows]})


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@api_login_required
def group_detail(request, group_id):
    group = get_object_or_404(Group.objects.select_related("owner"), id=group_id)

    if request.method == "DELETE":
        services.delete_group(request.user, group)
        _revoke(group_key(group.id))
        return JsonResponse({"message": "Group deleted."})

    data = _group(group, _member_statuses(request.user, [group.id]))
    data["member_count"] = group.members.filter(status=MemberStatus.ACCEPTED).count()
    return JsonResponse(data)


@csrf_exempt
@require_POST
@api_login_required
def join_group(request, group_id):
    group = get_object_or_404(Group, id=group_id)
    membership = services.join_group(request.user, group)
    return JsonResponse({"message": "Join request sent.", "status": membership.status}, status=201)


@require_GET
@api_login_required
def group_requests(request, group_id):
    group = get_object_or_404(Group, id=group_id)
    pending = services.pending_members(request.user, group)
    return JsonResponse({
        "requests": [
            {"user": _user_summary(m.user), "requested_at": m.joined_at.isoformat()}
            for m in pending
        ]
    })


@csrf_exempt
@require_http_methods(["PUT"])
@api_login_required
def accept_member(request, group_id, username):
    group = get_object_or_404(Group, id=group_id)
    services.accept_member(request.user, group, _active_user(username))
    return JsonResponse({"message": "Member accepted.", "status": MemberStatus.ACCEPTED})


@csrf_exempt
@require_http_methods(["DELETE"])
@api_login_required
def remove_member(request, group_id, username):
    group = get_object_or_404(Group, id=group_id)
    user = get_object_or_404(User, username=username)
    services.remove_member(request.user, group, user)
    _revoke(group_key(group.id), user.id)
    message = "You left the group." if user.id == request.user.id else "Member removed."
    return JsonResponse({"message": message})


@require_GET
@api_login_required
def group_members(request, group_id):
    group = get_object_or_404(Group, id=group_id)
    members = (
        GroupMember.objects.filter(group_id=group.id, status=MemberStatus.ACCEPTED)
        .select_related("user")
        .order_by("joined_at", "id")
    )
    return JsonResponse({
        "members": [
            dict(_user_summary(m.user), is_owner=m.user_id == group.owner_id, joined_at=m.joined_at.isoformat())
            for m in members
        ]
    })


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_login_required
def group_messages(request, group_id):
    group = get_object_or_404(Group, id=group_id)

    if request.method == "POST":
        data = _json_body(request)
        message = services.send_group_message(request.user, get_moderator(), group, data.get("content"))
        message = GroupMessage.objects.select_related("user").get(pk=message.pk)
        payload = _group_message(message)
        _push(group_key(group.id), RECEIVE_GROUP_MESSAGE, payload)
        return JsonResponse(payload, status=201)

    if not permissions.is_group_member(request.user.id, group.id):
        raise Forbidden("You must be a member of this group to read its messages.")
    rows = GroupMessage.objects.filter(group_id=group.id).select_related("user")
    return JsonResponse({"messages": [_group_message(m) for m in rows]})


@csrf_exempt
@require_http_methods(["DELETE"])
@api_login_required
def delete_group_message(request, group_id, message_id):
    message = get_object_or_404(
        GroupMessage.objects.select_related("group"), id=message_id, group_id=group_id
    )
    services.delete_group_message(request.user, message)
    _push(group_key(group_id), GROUP_MESSAGE_DELETED, {"id": message_id, "group_id": group_id})
    return JsonResponse({"message": "Message deleted."})


# ============================================================================
# DIRECT MESSAGES
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def send_direct_message(request, username):
    receiver = _active_user(username)
    data = _json_body(request)
    message = services.send_direct_message(request.user, get_moderator(), receiver, data.get("content"))
    message = DirectMessage.objects.select_related("sender", "receiver").get(pk=message.pk)
    payload = _direct_message(message)
    _push(conversation_key(request.user.id, receiver.id), RECEIVE_DIRECT_MESSAGE, payload)
    return JsonResponse(payload, status=201)


@require_GET
@api_login_required
def conversation(request, username):
    other = _active_user(username)
    rows = services.conversation_between(request.user, other)
    return JsonResponse({"messages": [_direct_message(m) for m in rows]})


@require_GET
@api_login_required
def conversations(request):
    summaries = services.conversation_summaries(request.user)
    return JsonResponse({
        "conversations": [
            {
                "user": _user_summary(s["partner"]),
                "last_message": services.preview(s["last_message"].content),
                "last_message_at": s["last_message"].created_at.isoformat(),
                "last_message_is_mine": s["last_message"].sender_id == request.user.id,
            }
            for s in summaries
        ]
    })


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@api_login_required
def direct_message_detail(request, message_id):
    message = get_object_or_404(
        DirectMessage.objects.select_related("sender", "receiver"), id=message_id
    )

    if request.method == "DELETE":
        key = conversation_key(message.sender_id, message.receiver_id)
        services.delete_direct_message(request.user, message)
        _push(key, DIRECT_MESSAGE_DELETED, {"id": message_id})
        return JsonResponse({"message": "Message deleted."})

    if request.user.id not in (message.sender_id, message.receiver_id):
        raise Forbidden("You are not part of this conversation.")
    return JsonResponse(_direct_message(message))
