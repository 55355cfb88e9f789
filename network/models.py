"""
================================================================================
SOCIALNET - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models defining the relationship store
@version     1.0.0

MODULE PURPOSE
================================================================================
This module defines all database models for the social network:
- User model (extended from AbstractUser)
- Posts, likes and comments
- Follow edges with a Pending/Accepted status
- Groups, group membership and group chat messages
- Direct messages

DATABASE STRUCTURE
================================================================================
1. User & Authentication
   - User (AbstractUser extension, carries denormalized follow counters)

2. Content Models
   - Post (image post with denormalized like/comment counters)
   - Like (one row per (post, user))
   - Comment (flat comments on a post)

3. Social Relationships
   - Follow (directed edge, unique per ordered pair)

4. Group Chat
   - Group (owned by one user)
   - GroupMember (membership request / accepted membership)
   - GroupMessage (chat message in a group)

5. Direct Messaging
   - DirectMessage (message between two users)

MODEL RELATIONSHIPS
================================================================================
User (1) ──────> (N) Post
User (1) ──────> (N) Comment
User (1) ──────> (N) Like
User (1) ──────> (N) DirectMessage (as sender / receiver)
User (N) <─────> (N) User (Follow)
User (N) <─────> (N) Group (via GroupMember)

Post (1) ──────> (N) Like
Post (1) ──────> (N) Comment
Group (1) ─────> (N) GroupMessage

COUNTER INVARIANTS
================================================================================
- User.followers_count == Accepted Follow rows where followed == user
- User.following_count == Accepted Follow rows where follower == user
- Post.like_count      == Like rows for the post
- Post.comment_count   == Comment rows for the post

Counters are only changed by the transition that causes them, inside the
same transaction (see network/services.py). Nothing here recomputes them.

================================================================================
"""

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import F, Q


DEFAULT_PROFILE_PICTURE = "/assets/img/no_user.png"


# ============================================================================
# CONSTANTS & CHOICES
# ============================================================================

class FollowStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    ACCEPTED = "Accepted", "Accepted"


class MemberStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    ACCEPTED = "Accepted", "Accepted"


# ============================================================================
# SECTION 1: USER & AUTHENTICATION MODELS
# ============================================================================

class User(AbstractUser):
    """
    Account and profile record.

    Extends Django's AbstractUser, which keeps the password hash and the
    staff flag used as the administrator role. Credential checks go through
    network.auth.CredentialVerifier rather than through this class.

    Attributes:
        description (TextField): Profile biography (max 500 chars)
        profile_picture_url (CharField): Path of the avatar image
        is_private (BooleanField): Private profile flag
        followers_count (PositiveIntegerField): Accepted incoming edges
        following_count (PositiveIntegerField): Accepted outgoing edges

    Related Names:
        posts, comments, likes: content authored by the user
        following: Follow rows where the user is the follower
        followers: Follow rows where the user is followed
        owned_groups, group_memberships, group_messages
        sent_direct_messages, received_direct_messages
    """

    description = models.TextField(
        max_length=500,
        blank=True,
        help_text="Profile biography or description"
    )
    profile_picture_url = models.CharField(
        max_length=255,
        default=DEFAULT_PROFILE_PICTURE,
        help_text="Path of the user's profile picture"
    )
    is_private = models.BooleanField(
        default=False,
        help_text="Private profile (accepted followers only)"
    )
    followers_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of accepted followers"
    )
    following_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of accepted followings"
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def role(self):
        return "Admin" if self.is_staff else "User"


# ============================================================================
# SECTION 2: CONTENT MODELS (Posts, Likes, Comments)
# ============================================================================

class Post(models.Model):
    """
    Image post with a text description.

    Attributes:
        user (ForeignKey): Post author
        description (TextField): Caption
        image_path (CharField): Storage path of the uploaded image
        created_at (DateTimeField): Creation datetime
        like_count (PositiveIntegerField): Denormalized number of likes
        comment_count (PositiveIntegerField): Denormalized number of comments

    Meta:
        ordering: Newest first
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='posts',
        help_text="Author of this post"
    )
    description = models.TextField(
        max_length=2000,
        blank=True,
        help_text="Post caption"
    )
    image_path = models.CharField(
        max_length=255,
        help_text="Path of the uploaded image"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Creation timestamp"
    )
    like_count = models.PositiveIntegerField(default=0)
    comment_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.user} - {self.description[:50]}"


class Like(models.Model):
    """
    A user's like on a post. The row's existence is the "has liked" state.
    """

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('post', 'user')


class Comment(models.Model):
    """
    Comment on a post.

    Deleting the post deletes its comments. Deleting a comment is allowed to
    its author, the post owner and administrators.

    Meta:
        ordering: Newest first
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments',
        help_text="Comment author"
    )
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='comments',
        help_text="Post being commented on"
    )
    content = models.TextField(
        max_length=500,
        help_text="Comment text content"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Creation timestamp"
    )

    class Meta:
        ordering = ['-created_at', '-id']


# ============================================================================
# SECTION 3: SOCIAL RELATIONSHIP MODELS
# ============================================================================

class Follow(models.Model):
    """
    Directed follow edge between two users.

    An edge toward a private user starts as Pending and becomes Accepted when
    the followed user accepts it. An edge toward a public user is created
    Accepted. Only Accepted edges count toward the follow counters.

    Attributes:
        follower (ForeignKey): User who is following
        followed (ForeignKey): User being followed
        status (CharField): Pending or Accepted
        created_at (DateTimeField): When the request was made

    Meta:
        unique_together: At most one edge per ordered pair
        constraints: No self edges

    Example:
        is_following = Follow.objects.filter(
            follower_id=actor.id,
            followed_id=owner.id,
            status=FollowStatus.ACCEPTED,
        ).exists()
    """

    follower = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='following',
        help_text="User who is following"
    )
    followed = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='followers',
        help_text="User being followed"
    )
    status = models.CharField(
        max_length=10,
        choices=FollowStatus.choices,
        default=FollowStatus.PENDING
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('follower', 'followed')
        constraints = [
            models.CheckConstraint(
                condition=~Q(follower=F('followed')),
                name='follow_no_self_edge',
            ),
        ]

    def __str__(self):
        return f"{self.follower} -> {self.followed} ({self.status})"


# ============================================================================
# SECTION 4: GROUP CHAT MODELS
# ============================================================================

class Group(models.Model):
    """
    Chat group owned by a single user.

    The owner is added as an Accepted member when the group is created and
    cannot leave it; the group has to be deleted instead.
    """

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500)
    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='owned_groups'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.name or f"Group #{self.id}"


class GroupMember(models.Model):
    """
    Membership of a user in a group.

    Joining creates a Pending row; the group owner accepts it.

    Meta:
        unique_together: One membership per user per group
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name='members'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='group_memberships'
    )
    status = models.CharField(
        max_length=10,
        choices=MemberStatus.choices,
        default=MemberStatus.PENDING
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('group', 'user')

    def __str__(self):
        return f"{self.user} in {self.group} ({self.status})"


class GroupMessage(models.Model):
    """Chat message sent to a group. Immutable once sent, except deletion."""

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name='messages'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='group_messages'
    )
    content = models.TextField(max_length=1000)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"[Group {self.group_id}] {self.user}: {self.content[:30]}"


# ============================================================================
# SECTION 5: DIRECT MESSAGING MODELS
# ============================================================================

class DirectMessage(models.Model):
    """
    Message between two users.

    Users do not need to follow each other to exchange direct messages.
    Both participants can read the conversation; only the sender may
    delete a message.
    """

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_direct_messages'
    )
    receiver = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='received_direct_messages'
    )
    content = models.TextField(max_length=1000)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.sender} to {self.receiver}: {self.content[:30]}"
