"""Small HTML pages returned to browsers and in-app WebViews."""

from html import escape

from src.config.settings import settings

_BASE_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #f5f5f5;
            color: #1f2933;
            margin: 0;
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
        }
        .card {
            background: white;
            border-radius: 12px;
            box-shadow: 0 4px 20px rgba(0, 0, 0, 0.1);
            padding: 30px;
            text-align: center;
            max-width: 420px;
        }
        .button {
            background: #1677ff;
            color: #fff;
            border: none;
            border-radius: 8px;
            padding: 14px 32px;
            font-size: 16px;
            font-weight: 600;
            cursor: pointer;
            text-decoration: none;
            display: inline-block;
        }
"""


def _page(title: str, body: str, lang: str = "en", head_extra: str = "") -> str:
    return f"""<!DOCTYPE html>
<html lang="{escape(lang)}">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
    <style>{_BASE_STYLE}</style>
    {head_extra}
</head>
<body>
    <div class="card">
{body}
    </div>
</body>
</html>"""


def payment_redirect_page(
    order_id: int, amount: str, currency: str, payment_url: str, lang: str = "en"
) -> str:
    """Auto-redirects to the gateway hosted payment page after three seconds."""
    url = escape(payment_url, quote=True)
    script = (
        "<script>setTimeout(function() { window.location.href = "
        f"'{url}'; }}, 3000);</script>"
    )
    body = f"""        <h1>Secure Payment</h1>
        <p>Order #{order_id} - {escape(amount)} {escape(currency)}</p>
        <p>Redirecting to secure payment page...</p>
        <a href="{url}" class="button">Pay Now</a>
        <p><small>You will be automatically redirected in 3 seconds</small></p>"""
    return _page(f"Payment - Order #{order_id}", body, lang, script)


def _app_return_page(title: str, message: str, deep_link: str) -> str:
    link = escape(deep_link, quote=True)
    body = f"""        <h1>{escape(title)}</h1>
        <p>{message}</p>
        <button class="button" onclick="window.location.href='{link}';">Return to App</button>"""
    return _page(title, body)


def mobile_success_page(order_id: int) -> str:
    return _app_return_page(
        "Payment Successful",
        f"Your order <strong>#{order_id}</strong> has been paid successfully. "
        "You can safely close this window and return to the app.",
        f"{settings.MPGS_APP_SCHEME}://payment-success?orderId={order_id}",
    )


def mobile_cancel_page(order_id: int) -> str:
    return _app_return_page(
        "Payment Cancelled",
        f"Your payment for order <strong>#{order_id}</strong> was not completed. "
        "You can return to the app to try again.",
        f"{settings.MPGS_APP_SCHEME}://payment-cancelled?orderId={order_id}",
    )
