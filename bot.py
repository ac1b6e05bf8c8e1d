import functools
import logging
from datetime import datetime, timezone

import discord
from discord.ext import commands

from bingo import settings
from bingo.errors import BingoError, PersistenceError, TileConfigError
from bingo.feed import parse_drop_message
from bingo.quips import QUIPS_NO_MATCH, QUIPS_PROGRESS, QUIPS_TILE_COMPLETE, QUIPS_UNASSIGNED, QuipBook
from bingo.render import render_board, render_summary
from bingo.service import BingoService, DropOutcome
from bingo.storage import load_state
from bingo.webhook import create_app, start_webhook

log = logging.getLogger("bingo")          # your app logs
discord_log = logging.getLogger("discord")  # discord.py logs

intents = discord.Intents.default()
intents.message_content = True
intents.guilds = True
bot = commands.Bot(command_prefix="!", intents=intents)

quips = QuipBook()


def can_manage():
    """Allowlisted admins, or anyone with Manage Server."""
    async def predicate(ctx):
        if ctx.author.id in settings.ALLOWED_ADMINS:
            return True
        perms = getattr(ctx.author, "guild_permissions", None)
        return bool(perms and perms.manage_guild)
    return commands.check(predicate)


def _chunks(text: str, limit: int = 1900):
    """Split on line breaks so each piece fits in one Discord message."""
    chunk = ""
    for line in text.splitlines():
        if chunk and len(chunk) + len(line) + 1 > limit:
            yield chunk
            chunk = ""
        chunk = f"{chunk}\n{line}" if chunk else line
    if chunk:
        yield chunk


async def _send_long(dest, text: str):
    for chunk in _chunks(text):
        await dest.send(chunk)


def _team_arg(ctx, team: str | None) -> str:
    # fall back to the channel name, e.g. #team-red -> "team red"
    return team or ctx.channel.name.replace("-", " ")


async def _notify_channel():
    channel_id = bot.bingo.state.channel_id
    if channel_id is None:
        return None
    channel = bot.get_channel(channel_id)
    if channel is None:
        try:
            channel = await bot.fetch_channel(channel_id)
        except discord.HTTPException as e:
            log.warning("[notify] Could not resolve channel %s: %r", channel_id, e)
            return None
    return channel


async def send_board(dest, team: str):
    """Render and post one team's board. Never raises on a render problem."""
    try:
        img_bytes = render_board(bot.bingo.state, team)
    except Exception:
        log.exception("[render] Failed to render board for %s", team)
        await dest.send(f"⚠️ Failed to render the board for **{team}**.")
        return
    await dest.send(file=discord.File(img_bytes, filename="board.png"))


async def announce(outcome: DropOutcome, source: str = "feed"):
    """Post the result of one drop to the bingo channel."""
    channel = await _notify_channel()
    if channel is None:
        log.info("[notify] No bingo channel set; skipping announcement for %s", outcome.reporter)
        return

    who = f"**{outcome.reporter}**"
    what = f"**{outcome.item_name}**"

    # 1) not on a team: advisory only
    if outcome.unassigned:
        await channel.send(
            f"⚠️ {who} isn't on a team yet, so {what} wasn't counted. "
            "An admin can fix that with `!assign`.\n\n"
            f"{quips.say('global', 'unassigned', QUIPS_UNASSIGNED)}"
        )
        return

    team = outcome.team

    # 2) nothing on the board (feed stays quiet to avoid spam)
    if not outcome.matched:
        if source == "webhook":
            await channel.send(
                f"ℹ️ {who} ({team}) got {what}, but it isn't on the board.\n\n"
                f"{quips.say(team, 'no_match', QUIPS_NO_MATCH)}"
            )
        return

    # 3) completions, once each, then a fresh board
    for tile in outcome.completed:
        await channel.send(
            f"🎉 **{team}** completed **{tile.name}**! ({who} — {what})\n\n"
            f"{quips.say(team, 'tile_complete', QUIPS_TILE_COMPLETE)}"
        )

    # 4) partial progress
    if outcome.progressed:
        lines = [f"📈 **{team}** progress from {who} — {what}:"]
        for tile, badge in outcome.progressed:
            lines.append(f"- **{tile.name}**: {badge}" if badge else f"- **{tile.name}**")
        if not outcome.completed:
            lines += ["", quips.say(team, "progress", QUIPS_PROGRESS)]
        await channel.send("\n".join(lines))

    if outcome.completed:
        await send_board(channel, team)


@bot.event
async def on_ready():
    # run once
    if getattr(bot, "_initialized", False):
        return
    bot._initialized = True

    runner = await start_webhook(create_app(bot.bingo, announce))
    bot._webhook_runner = runner

    log.info("Logged in as %s", bot.user)
    log.info("[BOOT] %d tiles loaded, %d teams, channel=%s",
             len(bot.bingo.state.tiles), len(bot.bingo.state.completed_by_team), bot.bingo.state.channel_id)
    log.info("[BOOT] Feed channels: %s", sorted(settings.FEED_CHANNEL_IDS) or "(none)")


@bot.event
async def on_message(message: discord.Message):
    if message.author == bot.user:
        return

    if message.channel.id in settings.FEED_CHANNEL_IDS:
        await handle_feed_message(message)

    await bot.process_commands(message)


async def handle_feed_message(message: discord.Message):
    if datetime.now(timezone.utc) < settings.START_TIME:
        log.info("[feed] Ignoring message before start time")
        return

    drops = parse_drop_message(message.content, [e.to_dict() for e in message.embeds])
    if not drops:
        return

    for drop in drops:
        try:
            await bot.bingo.handle_drop(
                drop.reporter, drop.item_name, notify=functools.partial(announce, source="feed")
            )
        except PersistenceError:
            log.exception("[feed] Failed to save drop %r from %s", drop.item_name, drop.reporter)
            channel = await _notify_channel()
            if channel is not None:
                await channel.send(
                    f"💾 Couldn't save **{drop.item_name}** from **{drop.reporter}**, so it wasn't counted. "
                    "Ping an admin."
                )


@bot.event
async def on_command_error(ctx, error):
    # Unwrap original errors (e.g., CommandInvokeError wraps the real one)
    original = getattr(error, "original", error)

    # 1) Unknown commands: stay quiet (prevents noise in public channels)
    if isinstance(error, commands.CommandNotFound):
        return

    # 2) Permission / check failures (e.g., can_manage)
    if isinstance(error, commands.MissingPermissions) or isinstance(error, commands.CheckFailure):
        await ctx.send("🛡️ You don’t have permission for that.")
        return

    # 3) Bad / missing args
    if isinstance(error, commands.MissingRequiredArgument):
        await ctx.send(f"❓ Missing argument: `{error.param.name}`.")
        return
    if isinstance(error, commands.BadArgument):
        await ctx.send("❓ That argument didn’t look right. Try again.")
        return

    # 4) Save failed: state was rolled back
    if isinstance(original, PersistenceError):
        log.error("[command_error] %s: %s", ctx.command, original)
        await ctx.send("💾 I couldn't save that change, so nothing was changed. Ping an admin.")
        return

    # 5) Expected domain errors (unknown team/tile, reserved names, ...)
    if isinstance(original, BingoError):
        await ctx.send(f"❌ {original}")
        return

    # 6) Anything else: log details, show a safe generic message
    log.exception("[command_error] %s in #%s by %s", ctx.command, getattr(ctx.channel, 'name', '?'), ctx.author,
                  exc_info=original)
    await ctx.send("⚠️ Something broke on my end. If it keeps happening, ping an admin.")


# ------- Setup -------
@bot.command(name="bingo-setchannel")
@can_manage()
async def set_channel(ctx, channel: discord.TextChannel):
    """Set the channel for bingo drops."""
    await bot.bingo.set_channel(channel.id)
    await ctx.send(f"Bingo drops channel set to {channel.mention}")


@bot.command(name="bingo-password")
async def show_password(ctx):
    """Reveal the bingo password (and start time)."""
    start = int(settings.START_TIME.timestamp())
    await ctx.send(f"The bingo password is: **{settings.PASSWORD}** (active starting <t:{start}:F>)")


# ------- Admin: rosters -------
@bot.command()
@can_manage()
async def assign(ctx, rsn: str, *, team: str):
    """Put a player on a team: !assign "Player Name" Team Name"""
    team_name, previous = await bot.bingo.assign(rsn, team)
    if previous and previous != team_name:
        await ctx.send(f"🔁 **{rsn}** moved from **{previous}** to **{team_name}**.")
    else:
        await ctx.send(f"✅ **{rsn}** is on **{team_name}**.")


@bot.command()
@can_manage()
async def unassign(ctx, *, rsn: str):
    previous = await bot.bingo.unassign(rsn)
    await ctx.send(f"👋 **{rsn}** removed from **{previous}**.")


@bot.command()
@can_manage()
async def deleteteam(ctx, *, team: str):
    team_name, removed = await bot.bingo.delete_team(team)
    await ctx.send(f"🗑️ **{team_name}** deleted ({len(removed)} players unassigned, progress cleared).")


@bot.command()
@can_manage()
async def renameteam(ctx, old: str, *, new: str):
    """Rename a team: !renameteam "Old Name" New Name"""
    old_name, new_name = await bot.bingo.rename_team(old, new)
    await ctx.send(f"✏️ **{old_name}** is now **{new_name}**.")


@bot.command()
async def teams(ctx):
    rows = bot.bingo.teams()
    if not rows:
        await ctx.send("No teams yet. Use `!assign` to create one.")
        return
    lines = ["👥 **Teams**"]
    for team, roster, done in rows:
        players = ", ".join(roster) if roster else "*(no players)*"
        lines.append(f"- **{team}** ({done} tiles) — {players}")
    await _send_long(ctx, "\n".join(lines))


@bot.command()
async def tiles(ctx):
    rows = bot.bingo.tile_keys()
    lines = ["🧩 **Tiles**"]
    for key, name, tile_type, inactive in rows:
        suffix = " *(inactive)*" if inactive else ""
        lines.append(f"- `{key}` — {name} [{tile_type}]{suffix}")
    await _send_long(ctx, "\n".join(lines))


# ------- Admin: manual progress -------
@bot.command()
@can_manage()
async def mark(ctx, tile_key: str, *, team: str):
    """Complete a tile by hand (pets, edge cases): !mark <tileKey> <team>"""
    team_name, tile, completed = await bot.bingo.mark(team, tile_key, marked_by=str(ctx.author))
    if not completed:
        await ctx.send(f"**{tile.name}** was already complete for **{team_name}**.")
        return
    await ctx.send(
        f"✅ **{tile.name}** marked complete for **{team_name}**.\n\n"
        f"{quips.say(team_name, 'tile_complete', QUIPS_TILE_COMPLETE)}"
    )
    await send_board(ctx, team_name)


@bot.command()
@can_manage()
async def unmark(ctx, tile_key: str, *, team: str):
    team_name, tile, removed = await bot.bingo.unmark(team, tile_key)
    if not removed:
        await ctx.send(f"**{tile.name}** had no progress for **{team_name}**.")
        return
    await ctx.send(f"⛔️ **{tile.name}** reset for **{team_name}**.")


@bot.command()
@can_manage()
async def testdrop(ctx, rsn: str, *, item: str):
    """Push a drop through the normal pipeline: !testdrop "Player" Item name"""
    outcome = await bot.bingo.handle_drop(rsn, item, notify=functools.partial(announce, source="webhook"))
    await ctx.send(
        f"🧪 Drop processed for **{outcome.team or 'no team'}**: "
        f"{len(outcome.completed)} completed, {len(outcome.progressed)} progressed."
    )


@bot.command()
@can_manage()
async def reseed(ctx, confirm: str = ""):
    """Replace all state with the bundled default board."""
    if confirm.lower() != "confirm":
        await ctx.send("⚠️ This wipes every team, roster and tile. Run `!reseed confirm` to go ahead.")
        return
    state = await bot.bingo.reseed()
    await ctx.send(f"🌱 State reseeded: {len(state.tiles)} tiles, {len(state.completed_by_team)} teams.")


# ------- Board queries -------
@bot.command()
async def board(ctx, *, team: str = None):
    team_name = bot.bingo.state.require_team(_team_arg(ctx, team))
    await send_board(ctx, team_name)


@bot.command()
async def status(ctx, *, team: str = None):
    team_name = bot.bingo.state.require_team(_team_arg(ctx, team))
    try:
        text = render_summary(bot.bingo.state, team_name)
    except Exception:
        log.exception("[render] Failed to build summary for %s", team_name)
        await ctx.send(f"⚠️ Failed to render the summary for **{team_name}**.")
        return
    await _send_long(ctx, text)


@bot.command(name="bingocommands")
async def show_bingo_commands(ctx):
    await ctx.send(
        "**📜 Bingo Commands**\n"
        "- `!board [team]` — show a team's board\n"
        "- `!status [team]` — completed and in-progress tiles\n"
        "- `!teams` / `!tiles` — list teams and tile keys\n"
        "- `!bingo-password` — the drop password and start time\n\n"
        "**• Admin Commands**\n"
        "- `!assign \"rsn\" team` / `!unassign rsn`\n"
        "- `!mark tileKey team` / `!unmark tileKey team`\n"
        "- `!renameteam \"old\" new` / `!deleteteam team`\n"
        "- `!bingo-setchannel #channel` / `!testdrop \"rsn\" item` / `!reseed confirm`\n"
    )


@bot.command(name="ping")
async def ping(ctx):
    """Quick sanity check: replies 'pong' with gateway latency."""
    log.info("[PING] channel=%s author=%s latency=%.3fs", getattr(ctx.channel, "name", "?"), ctx.author, bot.latency)
    await ctx.send(f"pong ({bot.latency:.3f}s)")


def main():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # Optional: tone down discord.py’s very chatty logs
    discord_log.setLevel(logging.WARNING)

    if not settings.DISCORD_TOKEN:
        raise RuntimeError("Set DISCORD_TOKEN environment variable.")

    try:
        state = load_state()
    except TileConfigError as e:
        # refuse to go live with a broken board
        raise SystemExit(f"[BOOT] Invalid tile configuration: {e}") from e

    bot.bingo = BingoService(state)
    bot.run(settings.DISCORD_TOKEN, log_handler=None)


# --- Run the bot ---
if __name__ == "__main__":
    main()
