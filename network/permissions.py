"""
================================================================================
SOCIALNET - VISIBILITY & PERMISSION RULES
================================================================================

Answers "may this actor do X to that resource" for views and services.
Every check is resolved with id-based queries; nothing relies on related
objects already being loaded.

RULES
================================================================================
View (profile content, posts, comments):
    owner is public  OR  actor is owner  OR  Accepted edge actor -> owner
    (administrators may always view)

Comment:
    same as view

Message (direct):
    any other active user

Group chat (read / send / subscribe):
    Accepted member of the group

Moderate a group (accept / remove members, list requests):
    group owner

Delete:
    post           -> author or administrator
    comment        -> author, post owner or administrator
    group          -> owner or administrator
    group message  -> sender, group owner or administrator
    direct message -> sender

================================================================================
"""

from .models import Follow, FollowStatus, GroupMember, MemberStatus


# ============================================================================
# ROLES & RELATIONSHIPS
# ============================================================================

def is_admin(user):
    return bool(user and user.is_authenticated and (user.is_staff or user.is_superuser))


def is_accepted_follower(follower_id, followed_id):
    return Follow.objects.filter(
        follower_id=follower_id,
        followed_id=followed_id,
        status=FollowStatus.ACCEPTED,
    ).exists()


def is_group_member(user_id, group_id):
    """True for Accepted members only; Pending requests do not count."""
    return GroupMember.objects.filter(
        group_id=group_id,
        user_id=user_id,
        status=MemberStatus.ACCEPTED,
    ).exists()


# ============================================================================
# VISIBILITY
# ============================================================================

def can_view_profile(actor, owner):
    """Whether actor may see owner's posts, comments and follow lists."""
    if not owner.is_private:
        return True
    if actor is None or not actor.is_authenticated:
        return False
    if actor.id == owner.id or is_admin(actor):
        return True
    return is_accepted_follower(actor.id, owner.id)


def can_view_post(actor, post):
    return can_view_profile(actor, post.user)


def can_comment(actor, post):
    return can_view_post(actor, post)


def can_message(actor, recipient):
    return actor.id != recipient.id and recipient.is_active


# ============================================================================
# GROUPS
# ============================================================================

def can_moderate_group(actor, group):
    return actor.id == group.owner_id


def can_delete_group(actor, group):
    return actor.id == group.owner_id or is_admin(actor)


# ============================================================================
# DELETE RIGHTS
# ============================================================================

def can_delete_post(actor, post):
    return actor.id == post.user_id or is_admin(actor)


def can_delete_comment(actor, comment):
    if actor.id == comment.user_id or is_admin(actor):
        return True
    return actor.id == comment.post.user_id


def can_delete_group_message(actor, message):
    if actor.id == message.user_id or is_admin(actor):
        return True
    return actor.id == message.group.owner_id


def can_delete_direct_message(actor, message):
    return actor.id == message.sender_id
