"""
================================================================================
SOCIALNET - STATE TRANSITIONS
================================================================================

Every write that changes a follow edge, a membership, a like, a comment or a
message goes through this module. Each transition runs in one transaction
and updates the denormalized counters together with the rows they summarize:

    follow (public target)      edge Accepted, both follow counters +1
    follow (private target)     edge Pending, counters unchanged
    accept follow request       Pending -> Accepted, both counters +1
    decline follow request      Pending edge removed
    unfollow                    edge removed, counters -1 if it was Accepted
    profile private -> public   every Pending incoming edge accepted
    like / unlike               Like row added/removed, like_count +/-1
    add / delete comment        Comment row added/removed, comment_count +/-1

Counters are written with F() expressions, so concurrent transitions on
different rows never lose an update. Callers that keep model instances
around should refresh_from_db() after a transition.

Moderation runs before any row is locked so a slow classifier does not hold
row locks.

Dependencies (the moderator) are passed in by the caller.

================================================================================
"""

import logging

from django.contrib.auth.password_validation import validate_password
from django.contrib.auth.validators import UnicodeUsernameValidator
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Count, F, Q

from . import media, permissions
from .exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from .models import (
    Comment, DirectMessage, Follow, FollowStatus, Group, GroupMember,
    GroupMessage, Like, MemberStatus, Post, User,
)
from .moderation import ensure_safe


logger = logging.getLogger(__name__)

SEARCH_LIMIT = 30
PREVIEW_LENGTH = 10


def clean_text(value, field, max_length, required=True):
    """Strip and length-check a text input. Raises ValidationFailed."""
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationFailed(f"{field} must be a string.")
    value = value.strip()
    if required and not value:
        raise ValidationFailed(f"{field} is required.")
    if len(value) > max_length:
        raise ValidationFailed(f"{field} must be at most {max_length} characters.")
    return value


def _bump(model, pk, **deltas):
    model.objects.filter(pk=pk).update(
        **{field: F(field) + delta for field, delta in deltas.items()}
    )


# ============================================================================
# FOLLOW GRAPH
# ============================================================================

@transaction.atomic
def follow_user(actor, target):
    if actor.id == target.id:
        raise ValidationFailed("You cannot follow yourself.")

    # Serializes against a concurrent private -> public switch of the target
    target = User.objects.select_for_update().get(pk=target.id)

    existing = Follow.objects.filter(follower_id=actor.id, followed_id=target.id).first()
    if existing is not None:
        if existing.status == FollowStatus.PENDING:
            raise Conflict("A follow request is already pending.")
        raise Conflict("You already follow this user.")

    status = FollowStatus.PENDING if target.is_private else FollowStatus.ACCEPTED
    follow = Follow.objects.create(follower_id=actor.id, followed_id=target.id, status=status)

    if status == FollowStatus.ACCEPTED:
        _bump(User, actor.id, following_count=1)
        _bump(User, target.id, followers_count=1)

    logger.info(f"{actor.username} -> {target.username} follow edge created ({status})")
    return follow


@transaction.atomic
def unfollow_user(actor, target):
    follow = (
        Follow.objects.select_for_update()
        .filter(follower_id=actor.id, followed_id=target.id)
        .first()
    )
    if follow is None:
        raise NotFound("You are not following this user.")

    if follow.status == FollowStatus.ACCEPTED:
        _bump(User, actor.id, following_count=-1)
        _bump(User, target.id, followers_count=-1)
    follow.delete()


@transaction.atomic
def accept_follow_request(actor, requester):
    """Only the followed user (actor) can accept."""
    follow = (
        Follow.objects.select_for_update()
        .filter(follower_id=requester.id, followed_id=actor.id)
        .first()
    )
    if follow is None:
        raise NotFound("No follow request from this user.")
    if follow.status == FollowStatus.ACCEPTED:
        raise Conflict("This follow request was already accepted.")

    follow.status = FollowStatus.ACCEPTED
    follow.save(update_fields=["status"])
    _bump(User, requester.id, following_count=1)
    _bump(User, actor.id, followers_count=1)
    return follow


@transaction.atomic
def decline_follow_request(actor, requester):
    follow = (
        Follow.objects.select_for_update()
        .filter(follower_id=requester.id, followed_id=actor.id, status=FollowStatus.PENDING)
        .first()
    )
    if follow is None:
        raise NotFound("No pending follow request from this user.")
    follow.delete()


def follow_status(actor, target):
    if actor.id == target.id:
        return "Self"
    status = (
        Follow.objects.filter(follower_id=actor.id, followed_id=target.id)
        .values_list("status", flat=True)
        .first()
    )
    return status or "None"


def pending_follow_requests(actor):
    return (
        Follow.objects.filter(followed_id=actor.id, status=FollowStatus.PENDING)
        .select_related("follower")
        .order_by("-created_at", "-id")
    )


def _accept_all_pending(user):
    pending = Follow.objects.select_for_update().filter(
        followed_id=user.id, status=FollowStatus.PENDING
    )
    follower_ids = list(pending.values_list("follower_id", flat=True))
    if not follower_ids:
        return 0
    pending.update(status=FollowStatus.ACCEPTED)
    User.objects.filter(pk__in=follower_ids).update(following_count=F("following_count") + 1)
    _bump(User, user.id, followers_count=len(follower_ids))
    logger.info(f"{user.username} went public, accepted {len(follower_ids)} pending requests")
    return len(follower_ids)


# ============================================================================
# PROFILE & ACCOUNT
# ============================================================================

def register_user(first_name, last_name, username, email, password, confirm_password):
    first_name = clean_text(first_name, "First name", 50)
    last_name = clean_text(last_name, "Last name", 50)
    username = clean_text(username, "Username", 150)
    email = clean_text(email, "Email", 254)

    try:
        UnicodeUsernameValidator()(username)
    except ValidationError:
        raise ValidationFailed("Username may contain only letters, digits and @/./+/-/_.") from None
    try:
        validate_email(email)
    except ValidationError:
        raise ValidationFailed("Enter a valid email address.") from None

    if not password:
        raise ValidationFailed("Password is required.")
    if password != confirm_password:
        raise ValidationFailed("Passwords must match.")

    candidate = User(username=username, email=email, first_name=first_name, last_name=last_name)
    try:
        validate_password(password, user=candidate)
    except ValidationError as e:
        raise ValidationFailed(" ".join(e.messages)) from None

    if User.objects.filter(username__iexact=username).exists():
        raise Conflict("Username already taken.")
    if User.objects.filter(email__iexact=email).exists():
        raise Conflict("Email address already in use.")

    user = User.objects.create_user(
        username=username,
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
    )
    logger.info(f"Registration success for {username}")
    return user


def update_profile(actor, moderator, username=None, description=None,
                   is_private=None, profile_picture_url=None):
    if username is not None:
        username = clean_text(username, "Username", 150)
        try:
            UnicodeUsernameValidator()(username)
        except ValidationError:
            raise ValidationFailed("Username may contain only letters, digits and @/./+/-/_.") from None

    if description is not None:
        description = clean_text(description, "Description", 500, required=False)
        ensure_safe(moderator, description)

    if is_private is not None and not isinstance(is_private, bool):
        raise ValidationFailed("is_private must be a boolean.")

    if profile_picture_url is not None:
        profile_picture_url = clean_text(profile_picture_url, "Profile picture", 255)

    with transaction.atomic():
        user = User.objects.select_for_update().get(pk=actor.id)

        if username is not None and username != user.username:
            if User.objects.filter(username__iexact=username).exclude(pk=user.id).exists():
                raise Conflict("Username already taken.")
            user.username = username
        if description is not None:
            user.description = description
        if profile_picture_url is not None:
            user.profile_picture_url = profile_picture_url

        going_public = is_private is False and user.is_private
        if is_private is not None:
            user.is_private = is_private

        user.save(update_fields=["username", "description", "profile_picture_url", "is_private"])

        if going_public:
            _accept_all_pending(user)

    user.refresh_from_db()
    return user


@transaction.atomic
def delete_account(actor):
    """
    Delete the account and everything it owns.

    Counters on other users and posts that the account's rows contributed
    to are decremented before the cascade removes those rows.
    """
    user_id = actor.id

    followed_ids = list(
        Follow.objects.filter(follower_id=user_id, status=FollowStatus.ACCEPTED)
        .values_list("followed_id", flat=True)
    )
    User.objects.filter(pk__in=followed_ids).update(followers_count=F("followers_count") - 1)

    follower_ids = list(
        Follow.objects.filter(followed_id=user_id, status=FollowStatus.ACCEPTED)
        .values_list("follower_id", flat=True)
    )
    User.objects.filter(pk__in=follower_ids).update(following_count=F("following_count") - 1)

    liked_post_ids = list(
        Like.objects.filter(user_id=user_id)
        .exclude(post__user_id=user_id)
        .values_list("post_id", flat=True)
    )
    Post.objects.filter(pk__in=liked_post_ids).update(like_count=F("like_count") - 1)

    commented = (
        Comment.objects.filter(user_id=user_id)
        .exclude(post__user_id=user_id)
        .values("post_id")
        .annotate(n=Count("id"))
    )
    for row in commented:
        _bump(Post, row["post_id"], comment_count=-row["n"])

    User.objects.filter(pk=user_id).delete()
    logger.info(f"Account {user_id} deleted")


def search_users(query):
    query = (query or "").strip()
    if not query:
        return User.objects.none()
    return (
        User.objects.filter(is_active=True)
        .filter(
            Q(username__icontains=query)
            | Q(first_name__icontains=query)
            | Q(last_name__icontains=query)
        )
        .order_by("username")[:SEARCH_LIMIT]
    )


# ============================================================================
# POSTS & LIKES
# ============================================================================

def visible_posts(actor):
    """Posts the actor may see: public authors, own posts, accepted follows."""
    posts = Post.objects.select_related("user")
    if permissions.is_admin(actor):
        return posts
    followed = Follow.objects.filter(
        follower_id=actor.id, status=FollowStatus.ACCEPTED
    ).values("followed_id")
    return posts.filter(
        Q(user__is_private=False) | Q(user_id=actor.id) | Q(user_id__in=followed)
    )


def following_feed(actor):
    followed = Follow.objects.filter(
        follower_id=actor.id, status=FollowStatus.ACCEPTED
    ).values("followed_id")
    return Post.objects.select_related("user").filter(user_id__in=followed)


def create_post(actor, moderator, image, description=""):
    """Validate and moderate first; the image is stored only for accepted posts."""
    description = clean_text(description, "Description", 2000, required=False)
    if image is None:
        raise ValidationFailed("An image is required.")
    media.validate_image(image)
    ensure_safe(moderator, description)
    image_path = media.store_image(image, media.POSTS_FOLDER)
    return Post.objects.create(user_id=actor.id, image_path=image_path, description=description)


def update_post(actor, moderator, post, description):
    if post.user_id != actor.id:
        raise Forbidden("You can only edit your own posts.")
    description = clean_text(description, "Description", 2000, required=False)
    ensure_safe(moderator, description)
    post.description = description
    post.save(update_fields=["description"])
    return post


def delete_post(actor, post):
    if not permissions.can_delete_post(actor, post):
        raise Forbidden("You are not allowed to delete this post.")
    image_path = post.image_path
    post.delete()
    return image_path


def has_liked(actor, post_id):
    return Like.objects.filter(post_id=post_id, user_id=actor.id).exists()


def _lock_visible_post(actor, post):
    if not permissions.can_view_post(actor, post):
        raise Forbidden("You are not allowed to view this post.")
    return Post.objects.select_for_update().get(pk=post.id)


def _apply_like(actor, post, liked):
    exists = Like.objects.filter(post_id=post.id, user_id=actor.id).exists()

    if liked and not exists:
        Like.objects.create(post_id=post.id, user_id=actor.id)
        _bump(Post, post.id, like_count=1)
    elif not liked and exists:
        Like.objects.filter(post_id=post.id, user_id=actor.id).delete()
        _bump(Post, post.id, like_count=-1)

    post.refresh_from_db(fields=["like_count"])
    return liked, post.like_count


@transaction.atomic
def set_like(actor, post, liked):
    """
    Bring the actor's like on post to the requested state.

    Returns (is_liked, like_count). Asking for the current state is a no-op.
    """
    locked = _lock_visible_post(actor, post)
    return _apply_like(actor, locked, liked)


@transaction.atomic
def toggle_like(actor, post):
    locked = _lock_visible_post(actor, post)
    return _apply_like(actor, locked, not has_liked(actor, locked.id))


@transaction.atomic
def remove_like(like):
    """Delete a like row by id, without visibility checks. Used by the admin site."""
    Post.objects.select_for_update().filter(pk=like.post_id).first()
    deleted, _ = Like.objects.filter(pk=like.pk).delete()
    if deleted:
        _bump(Post, like.post_id, like_count=-1)


# ============================================================================
# COMMENTS
# ============================================================================

def add_comment(actor, moderator, post, content):
    content = clean_text(content, "Comment", 500)
    if not permissions.can_comment(actor, post):
        raise Forbidden("You are not allowed to comment on this post.")
    ensure_safe(moderator, content)

    with transaction.atomic():
        comment = Comment.objects.create(user_id=actor.id, post_id=post.id, content=content)
        _bump(Post, post.id, comment_count=1)
    return comment


def edit_comment(actor, moderator, comment, content):
    if comment.user_id != actor.id:
        raise Forbidden("You can only edit your own comments.")
    content = clean_text(content, "Comment", 500)
    ensure_safe(moderator, content)
    comment.content = content
    comment.save(update_fields=["content"])
    return comment


@transaction.atomic
def delete_comment(actor, comment):
    if not permissions.can_delete_comment(actor, comment):
        raise Forbidden("You are not allowed to delete this comment.")
    # A concurrent delete of the same comment must not decrement twice
    deleted, _ = Comment.objects.filter(pk=comment.pk).delete()
    if deleted:
        _bump(Post, comment.post_id, comment_count=-1)


# ============================================================================
# GROUPS
# ============================================================================

def create_group(actor, moderator, name, description=""):
    name = clean_text(name, "Name", 100)
    description = clean_text(description, "Description", 500, required=False)
    ensure_safe(moderator, name, description)

    with transaction.atomic():
        group = Group.objects.create(name=name, description=description, owner_id=actor.id)
        GroupMember.objects.create(group=group, user_id=actor.id, status=MemberStatus.ACCEPTED)
    return group


def delete_group(actor, group):
    if not permissions.can_delete_group(actor, group):
        raise Forbidden("Only the group owner can delete this group.")
    group.delete()


def join_group(actor, group):
    existing = GroupMember.objects.filter(group_id=group.id, user_id=actor.id).first()
    if existing is not None:
        if existing.status == MemberStatus.ACCEPTED:
            raise Conflict("You are already a member of this group.")
        raise Conflict("You have already requested to join this group.")
    return GroupMember.objects.create(group_id=group.id, user_id=actor.id, status=MemberStatus.PENDING)


def pending_members(actor, group):
    if not permissions.can_moderate_group(actor, group):
        raise Forbidden("Only the group owner can see join requests.")
    return (
        GroupMember.objects.filter(group_id=group.id, status=MemberStatus.PENDING)
        .select_related("user")
        .order_by("joined_at", "id")
    )


@transaction.atomic
def accept_member(actor, group, user):
    if not permissions.can_moderate_group(actor, group):
        raise Forbidden("Only the group owner can accept members.")
    membership = (
        GroupMember.objects.select_for_update()
        .filter(group_id=group.id, user_id=user.id)
        .first()
    )
    if membership is None:
        raise NotFound("No join request from this user.")
    if membership.status == MemberStatus.ACCEPTED:
        raise Conflict("This user is already a member.")
    membership.status = MemberStatus.ACCEPTED
    membership.save(update_fields=["status"])
    return membership


def remove_member(actor, group, user):
    """Leave (actor == user) or remove a member (actor is the owner)."""
    if user.id == group.owner_id:
        raise ValidationFailed("The group owner cannot leave the group. Delete the group instead.")
    if actor.id != user.id and not permissions.can_moderate_group(actor, group):
        raise Forbidden("Only the group owner can remove members.")
    deleted, _ = GroupMember.objects.filter(group_id=group.id, user_id=user.id).delete()
    if not deleted:
        raise NotFound("This user is not a member of the group.")


def send_group_message(actor, moderator, group, content):
    content = clean_text(content, "Message", 1000)
    if not permissions.is_group_member(actor.id, group.id):
        raise Forbidden("You must be a member of this group to send messages.")
    ensure_safe(moderator, content)
    return GroupMessage.objects.create(group_id=group.id, user_id=actor.id, content=content)


def delete_group_message(actor, message):
    if not permissions.can_delete_group_message(actor, message):
        raise Forbidden("You are not allowed to delete this message.")
    message.delete()


# ============================================================================
# DIRECT MESSAGES
# ============================================================================

def send_direct_message(actor, moderator, receiver, content):
    content = clean_text(content, "Message", 500)
    if actor.id == receiver.id:
        raise ValidationFailed("You cannot send a message to yourself.")
    if not permissions.can_message(actor, receiver):
        raise NotFound("User not found.")
    ensure_safe(moderator, content)
    return DirectMessage.objects.create(sender_id=actor.id, receiver_id=receiver.id, content=content)


def delete_direct_message(actor, message):
    if not permissions.can_delete_direct_message(actor, message):
        raise Forbidden("You can only delete your own messages.")
    message.delete()


def conversation_between(actor, other):
    return (
        DirectMessage.objects.filter(
            Q(sender_id=actor.id, receiver_id=other.id)
            | Q(sender_id=other.id, receiver_id=actor.id)
        )
        .select_related("sender", "receiver")
        .order_by("created_at", "id")
    )


def preview(content):
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH] + "..."


def conversation_summaries(actor):
    """One entry per partner with the latest message, newest first."""
    messages = (
        DirectMessage.objects.filter(Q(sender_id=actor.id) | Q(receiver_id=actor.id))
        .select_related("sender", "receiver")
        .order_by("-created_at", "-id")
    )
    summaries = {}
    for message in messages.iterator():
        partner = message.receiver if message.sender_id == actor.id else message.sender
        if partner.id in summaries:
            continue
        summaries[partner.id] = {
            "partner": partner,
            "last_message": message,
        }
    return list(summaries.values())
