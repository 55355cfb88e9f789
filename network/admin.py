from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group as AuthGroup
from django.utils.html import format_html
from django.urls import reverse
from . import services
from .models import (
    User, Post, Like, Comment, Follow,
    Group, GroupMember, GroupMessage, DirectMessage
)

# ==================== ADMIN CLASSES ====================

# Counters are maintained by network.services; they are read-only here.
# Rows that feed a counter (likes, comments, follows) cannot be added or
# edited here, and every delete goes through network.services.


class ServiceDeleteAdmin(admin.ModelAdmin):
    """View and delete only. Subclasses implement delete_model()."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def delete_queryset(self, request, queryset):
        for obj in queryset:
            self.delete_model(request, obj)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'is_private', 'followers_count', 'following_count', 'is_staff', 'date_joined')
    list_filter = ('is_private', 'is_staff', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name')
    readonly_fields = ('followers_count', 'following_count')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profile', {'fields': ('description', 'profile_picture_url', 'is_private', 'followers_count', 'following_count')}),
    )
    actions = ['activate_users', 'deactivate_users']

    def activate_users(self, request, queryset):
        queryset.update(is_active=True)
        self.message_user(request, f"{queryset.count()} users activated")
    activate_users.short_description = "Activate selected users"

    def deactivate_users(self, request, queryset):
        queryset.update(is_active=False)
        self.message_user(request, f"{queryset.count()} users deactivated")
    deactivate_users.short_description = "Deactivate selected users"

    def delete_model(self, request, obj):
        services.delete_account(obj)

    def delete_queryset(self, request, queryset):
        for user in queryset:
            services.delete_account(user)


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ('id', 'user_link', 'created_at', 'description_short', 'like_count', 'comment_count')
    search_fields = ('description', 'user__username')
    readonly_fields = ('like_count', 'comment_count')

    def user_link(self, obj):
        url = reverse("admin:network_user_change", args=[obj.user_id])
        return format_html('<a href="{}">{}</a>', url, obj.user.username)
    user_link.short_description = 'User'
    user_link.admin_order_field = 'user__username'

    def description_short(self, obj):
        if obj.description:
            return obj.description[:80] + '...' if len(obj.description) > 80 else obj.description
        return "(no description)"
    description_short.short_description = 'Description'


@admin.register(Like)
class LikeAdmin(ServiceDeleteAdmin):
    list_display = ('id', 'post', 'user', 'created_at')
    search_fields = ('user__username', 'post__id')

    def delete_model(self, request, obj):
        services.remove_like(obj)


@admin.register(Comment)
class CommentAdmin(ServiceDeleteAdmin):
    list_display = ('id', 'user', 'post', 'created_at', 'content_short')
    search_fields = ('content', 'user__username', 'post__id')

    def delete_model(self, request, obj):
        services.delete_comment(request.user, obj)

    def content_short(self, obj):
        return obj.content[:50] + '...' if len(obj.content) > 50 else obj.content
    content_short.short_description = 'Content'


@admin.register(Follow)
class FollowAdmin(ServiceDeleteAdmin):
    list_display = ('id', 'follower', 'followed', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('follower__username', 'followed__username')

    def delete_model(self, request, obj):
        services.unfollow_user(obj.follower, obj.followed)


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'owner', 'created_at', 'member_count')
    search_fields = ('name', 'owner__username')

    def member_count(self, obj):
        return obj.members.filter(status='Accepted').count()
    member_count.short_description = 'Members'


@admin.register(GroupMember)
class GroupMemberAdmin(admin.ModelAdmin):
    list_display = ('id', 'group', 'user', 'status', 'joined_at')
    list_filter = ('status', 'joined_at')
    search_fields = ('group__name', 'user__username')


@admin.register(GroupMessage)
class GroupMessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'group', 'user', 'created_at', 'content_short')
    search_fields = ('content', 'user__username', 'group__name')

    def content_short(self, obj):
        return obj.content[:50] + '...' if len(obj.content) > 50 else obj.content
    content_short.short_description = 'Content'


@admin.register(DirectMessage)
class DirectMessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'sender', 'receiver', 'created_at', 'content_short')
    search_fields = ('content', 'sender__username', 'receiver__username')

    def content_short(self, obj):
        return obj.content[:50] + '...' if len(obj.content) > 50 else obj.content
    content_short.short_description = 'Content'


# Unregister Django's default auth Group; chat groups are network.Group
admin.site.unregister(AuthGroup)

# Basic admin site configuration
admin.site.site_header = "SocialNet Admin"
admin.site.site_title = "SocialNet Admin Portal"
admin.site.index_title = "Welcome"
