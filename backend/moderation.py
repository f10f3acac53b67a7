"""Admin slash-commands and ban enforcement."""
import hmac
import logging

from .chat import send_system

logger = logging.getLogger(__name__)

ADMIN_COMMANDS = ('/kick', '/ban', '/unban', '/mute', '/unmute')


class Moderation:
    def __init__(self, store, registry, connections, settings):
        self.store = store
        self.registry = registry
        self.connections = connections
        self.settings = settings

    async def is_banned_address(self, ip) -> bool:
        return await self.store.find_banned_by_ip(ip) is not None

    async def handle_command(self, conn, session, text) -> bool:
        """Run a slash-command. Returns False when the text is not a known command."""
        parts = text.split()
        command, args = parts[0].lower(), parts[1:]

        if command == '/auth':
            await self._auth(conn, session, args)
            return True
        if command not in ADMIN_COMMANDS:
            return False

        if not await self.registry.is_admin(conn.id):
            send_system(self.connections, conn.id, 'Permission denied.')
            return True
        if not args:
            send_system(self.connections, conn.id, f'Usage: {command} <username>')
            return True

        # usernames may contain spaces; take the rest of the line verbatim
        username = text.split(None, 1)[1].strip()
        handler = getattr(self, '_' + command[1:])
        await handler(conn, session, username)
        return True

    async def _auth(self, conn, session, args):
        secret = args[0] if args else ''
        if secret and hmac.compare_digest(secret.encode(), self.settings.admin_password.encode()):
            await self.registry.elevate(conn.id)
            logger.info('%s (%s) elevated to admin', session.username, conn.id)
            send_system(self.connections, conn.id, 'Admin logged in.')
        else:
            logger.warning('failed /auth from %s (%s)', session.username, session.client_address)
            send_system(self.connections, conn.id, 'Invalid admin password.')

    def _disconnect_user(self, connection_ids, notice):
        for cid in connection_ids:
            send_system(self.connections, cid, notice)
            self.connections.close(cid)

    async def _kick(self, conn, session, username):
        ids = await self.registry.lookup_by_username(username)
        if not ids:
            send_system(self.connections, conn.id, f'{username} is not online.')
            return
        self._disconnect_user(ids, 'You have been kicked.')
        logger.info('%s kicked %s (%d session(s))', session.username, username, len(ids))
        send_system(self.connections, conn.id, f'Kicked {username}.')

    async def _ban(self, conn, session, username):
        user = await self.store.find_user(username)
        if user is None:
            send_system(self.connections, conn.id, f'No such user: {username}.')
            return
        # ip is kept so new connections from that address are refused
        await self.store.update_user(username, {'isBanned': True})
        self._disconnect_user(await self.registry.lookup_by_username(username), 'You are banned.')
        logger.info('%s banned %s (ip=%s)', session.username, username, user.ip)
        send_system(self.connections, conn.id, f'Banned {username}.')

    async def _unban(self, conn, session, username):
        if await self.store.find_user(username) is None:
            send_system(self.connections, conn.id, f'No such user: {username}.')
            return
        await self.store.update_user(username, {'isBanned': False})
        logger.info('%s unbanned %s', session.username, username)
        send_system(self.connections, conn.id, f'Unbanned {username}.')

    async def _set_muted(self, conn, session, username, muted):
        if await self.store.find_user(username) is None:
            send_system(self.connections, conn.id, f'No such user: {username}.')
            return
        await self.store.update_user(username, {'isMuted': muted})
        await self.registry.set_muted(username, muted)
        logger.info('%s %s %s', session.username, 'muted' if muted else 'unmuted', username)
        send_system(self.connections, conn.id, f"{'Muted' if muted else 'Unmuted'} {username}.")

    async def _mute(self, conn, session, username):
        await self._set_muted(conn, session, username, True)

    async def _unmute(self, conn, session, username):
        await self._set_muted(conn, session, username, False)
