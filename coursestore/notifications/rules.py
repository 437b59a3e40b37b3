from coursestore.notifications.events import OrderEvent
from coursestore.notifications.channels import Channel


NOTIFICATION_RULES = {

    OrderEvent.PAYMENT_SUCCESS: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },
}
