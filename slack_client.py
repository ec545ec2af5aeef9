import logging
import requests
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


class SlackBlock(object):
    def __init__(self):
        self.block = []

    def get(self):
        return {"blocks": self.block}

    def append(self, message_type="mrkdwn", message=""):
        """
        appends a new section to the message
        """
        self.block.append(
            {"type": "section", "text": {"type": message_type, "text": message}}
        )

    def add_context(self, message=""):
        """
        appends a line of small print under the previous section
        """
        self.block.append(
            {"type": "context", "elements": [{"type": "mrkdwn", "text": message}]}
        )

    def add_divider(self):
        self.block.append({"type": "divider"})


class SlackClient(object):
    """
    Posts block/unblock notifications to Slack.

    Uses the Web API when a bot token is configured and falls back to an
    incoming webhook otherwise. Every method returns a bool and logs the
    failure cause instead of raising.
    """

    logger = logging.getLogger(__name__)

    def __init__(self, token="", webhook_url="", channel=""):
        self.token = token if token else None
        self.webhook_url = webhook_url
        self.channel = channel
        self.client = self.get_client() if self.token else None
        self.response = None

    def get_client(self):
        return WebClient(token=self.token)

    def post_message(self, message="", channel=""):
        """
        Posts a text message to a Slack channel.

        Args:
            message: The text message to post
            channel: Optional channel override (uses self.channel if not provided)

        Returns:
            bool: True if successful, False otherwise
        """
        if not self.client:
            if self.webhook_url:
                return self.post_payload({"text": message})
            self.logger.error("Slack client not initialized. Cannot post message.")
            return False

        if self.token == "test":
            self.logger.info("Using test token. Wont post anything to slack")
            return True

        try:
            target_channel = channel if channel else self.channel
            if not target_channel:
                self.logger.error("No channel specified for message posting")
                return False

            self.logger.info(
                "Notifying slack channel [%s] with message: %s"
                % (target_channel, message)
            )
            self.response = self.client.chat_postMessage(
                channel=target_channel, text=message
            )
            self.logger.debug("Message posted successfully: %s" % self.response)
            return True
        except SlackApiError as err:
            self.logger.warning(
                "Slack API error when posting message: %s", err.response["error"]
            )
            return False
        except Exception as err:
            self.logger.warning("Whoops... could not post to slack: %s", err)
            return False

    def post_blocks(self, blocks=None, channel="", text=""):
        """
        Posts formatted blocks to a Slack channel.

        Args:
            blocks: List of Slack block objects (see SlackBlock)
            channel: Optional channel override (uses self.channel if not provided)
            text: Plain-text fallback shown in notifications

        Returns:
            bool: True if successful, False otherwise
        """
        blocks = blocks or []
        if not self.client:
            if self.webhook_url:
                return self.post_payload({"blocks": blocks, "text": text})
            self.logger.error("Slack client not initialized. Cannot post blocks.")
            return False

        if self.token == "test":
            self.logger.info("Using test token. Wont post anything to slack")
            return True

        try:
            target_channel = channel if channel else self.channel
            if not target_channel:
                self.logger.error("No channel specified for blocks posting")
                return False

            self.logger.info(
                "Notifying slack channel [%s] with blocks: %s"
                % (target_channel, blocks)
            )
            self.response = self.client.chat_postMessage(
                channel=target_channel, blocks=blocks, text=text
            )
            self.logger.debug("Blocks posted successfully: %s" % self.response)
            return True
        except SlackApiError as err:
            self.logger.warning(
                "Slack API error when posting blocks: %s", err.response["error"]
            )
            return False
        except Exception as err:
            self.logger.warning("Whoops... could not post blocks to slack: %s", err)
            return False

    def post_payload(self, payload):
        """
        Posts a raw payload to a Slack webhook URL.

        Args:
            payload: Dictionary payload to send to webhook

        Returns:
            bool: True if successful, False otherwise
        """
        if not self.webhook_url:
            self.logger.error("No webhook URL configured. Cannot post payload.")
            return False

        try:
            self.logger.info("slack payload: %s" % (payload))
            response = requests.post(self.webhook_url, json=payload, timeout=10)
            response.raise_for_status()
            self.logger.debug("Payload posted successfully to webhook")
            return True
        except requests.exceptions.RequestException as err:
            self.logger.warning("Failed to post payload to webhook: %s", err)
            return False


def create_slack_client(settings):
    """
    Returns a SlackClient for the configured credentials, or None when
    notifications are not configured.
    """
    logger = logging.getLogger(__name__)
    token = settings.slack_token
    channel = settings.slack_channel
    webhook_url = settings.slack_webhook_url

    if token and channel:
        logger.info("Initializing Slack notifications...")
        return SlackClient(token=token, webhook_url=webhook_url or "", channel=channel)
    if webhook_url:
        logger.info("Initializing Slack webhook notifications...")
        return SlackClient(webhook_url=webhook_url)
    if token or channel:
        logger.warning(
            "Slack token or channel provided but not both. Slack notifications disabled."
        )
    return None
