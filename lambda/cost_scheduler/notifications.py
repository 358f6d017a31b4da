import json
import logging
from urllib import request

import boto3

logger = logging.getLogger(__name__)

SUBJECT = "Scheduler Error Notification"


def _post_json(url, payload):
    req = request.Request(url, data=payload, headers={"Content-Type": "application/json"})
    with request.urlopen(req, timeout=10):
        return


def _send_teams(webhook, message):
    if not webhook:
        return
    _post_json(webhook, json.dumps({"text": message}).encode("utf-8"))


def _send_slack(webhook, message):
    if not webhook:
        return
    body = {
        "text": message,
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": SUBJECT}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"```{message}```"}},
        ],
    }
    _post_json(webhook, json.dumps(body).encode("utf-8"))


def _send_sns(sns, topic_arn, message):
    if not topic_arn:
        return
    sns.publish(TopicArn=topic_arn, Subject=SUBJECT, Message=message)


def notify_failure(settings, message, sns_client=None):
    """Page the operators about a failed invocation on every configured channel."""
    text = f"Error in scheduler: {message}"
    sent = []

    if settings.sns_topic_arn:
        try:
            sns = sns_client or boto3.client("sns", region_name=settings.region)
            _send_sns(sns, settings.sns_topic_arn, text)
            sent.append("sns")
        except Exception:
            logger.exception("failed to publish failure notification to sns")

    for name, sender, target in (
        ("slack", _send_slack, settings.slack_webhook_url),
        ("teams", _send_teams, settings.teams_webhook_url),
    ):
        if not target:
            continue
        try:
            sender(target, text)
            sent.append(name)
        except Exception:
            logger.exception("failed to send failure notification to %s", name)

    if sent:
        logger.info("failure notification sent channels=%s", ",".join(sent))
    return sent
