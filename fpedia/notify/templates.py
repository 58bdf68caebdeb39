# notify/templates.py
"""
Message bodies. `*.txt` are WhatsApp messages (plain, WhatsApp markup),
`*.html` are mail bodies (autoescaped).
"""
import datetime

from jinja2 import Environment, DictLoader, select_autoescape

from ..helpers import format_idr

_MAIL_LAYOUT = """<div style="font-family: Arial, sans-serif; color: #333; line-height: 1.6; max-width: 600px; margin: 0 auto; border: 1px solid #eee; border-radius: 8px; overflow: hidden;">
  <div style="background-color: #000; padding: 20px; text-align: center; color: #fff; font-weight: bold;">F-PEDIA</div>
  <div style="padding: 24px;">
    {% block content %}{% endblock %}
  </div>
  <div style="background-color: #f9f9f9; padding: 16px; text-align: center; font-size: 12px; color: #888;">
    &copy; {{ year }} F-PEDIA. All rights reserved.
  </div>
</div>
"""

TEMPLATES = {
    "layout.html": _MAIL_LAYOUT,

    # ---- checkout
    "admin_new_order.txt": """*Order Baru F-PEDIA*

Produk: {{ product_title }}
Jumlah: {{ quantity }}
Total: Rp {{ total | idr }}
Pemesan: {{ email }}
WA: {{ whatsapp or '-' }}
Order ID: {{ transaction_id }}""",

    "admin_new_order.html": """{% extends "layout.html" %}{% block content %}
<h2 style="color: #000; margin-top: 0;">Order Baru Masuk</h2>
<table style="width: 100%; border-collapse: collapse; margin-bottom: 20px;">
  <tr><td><strong>Order ID</strong></td><td>{{ transaction_id }}</td></tr>
  <tr><td><strong>Produk</strong></td><td>{{ product_title }}</td></tr>
  <tr><td><strong>Jumlah</strong></td><td>{{ quantity }} unit</td></tr>
  <tr><td><strong>Total</strong></td><td style="color: #d32f2f; font-weight: bold;">Rp {{ total | idr }}</td></tr>
  <tr><td><strong>Customer</strong></td><td>{{ email }}</td></tr>
  <tr><td><strong>WhatsApp</strong></td><td>{{ whatsapp or '-' }}</td></tr>
</table>
<p style="margin-bottom: 0;">Status: <strong>Pending Payment</strong></p>
{% endblock %}""",

    "buyer_new_order.txt": """*Kamu telah order di F-PEDIA*

Halo,

Pesanan Anda:
• Produk: *{{ product_title }}*
• Jumlah: {{ quantity }} unit
• Total pembayaran: Rp {{ total | idr }}
• Order ID: {{ transaction_id }}

{% if promo_text %}*Promo:* {{ promo_text }}

{% endif %}Silakan scan QR untuk pembayaran.
*Harap bayar sebelum: {{ pay_before }}*

Setelah terverifikasi, akun akan dikirim ke WhatsApp ini.

Terima kasih!""",

    # ---- fulfillment
    "buyer_delivery.txt": """*Terima kasih telah order di F-PEDIA!*

Halo {{ buyer or 'Pelanggan' }},

Pembayaran Anda untuk pesanan *{{ product_title }}* (Order ID: {{ transaction_id }}) telah berhasil.

*Detail Akun ({{ quantity }}):*
{% if accounts %}{% for email, password in accounts %}{{ loop.index }}. Email: {{ email }}
   Password: {{ password }}{% if not loop.last %}

{% endif %}{% endfor %}{% else %}Menunggu pengiriman.{% endif %}

{% if instructions %}*Cara Penggunaan:*
{{ instructions }}

{% endif %}{% if promo_text %}*Promo:* {{ promo_text }}

{% endif %}Terima kasih telah mempercayakan F-PEDIA.""",

    "admin_payment.html": """{% extends "layout.html" %}{% block content %}
<h3>Pembayaran Diterima</h3>
<p><strong>Order ID:</strong> {{ transaction_id }}</p>
<p><strong>Produk:</strong> {{ product_title }}</p>
<p><strong>Jumlah:</strong> {{ quantity }}</p>
<p><strong>Total:</strong> Rp {{ total | idr }}</p>
<p><strong>Customer:</strong> {{ email }} ({{ whatsapp or '-' }})</p>
<p><strong>Status:</strong> Lunas (Paid)</p>
<p><strong>Akun Terkirim:</strong></p>
<pre>{% for email, password in accounts %}{{ loop.index }}. Email: {{ email }}
   Password: {{ password }}
{% else %}-{% endfor %}</pre>
{% endblock %}""",

    "admin_allocation_failed.html": """{% extends "layout.html" %}{% block content %}
<h3 style="color: red;">Pengiriman Manual Diperlukan</h3>
<p>Order <strong>{{ transaction_id }}</strong> sudah dibayar tetapi alokasi akun gagal.</p>
<p><strong>Produk:</strong> {{ product_title }}</p>
<p><strong>Jumlah:</strong> {{ quantity }}</p>
<p><strong>Customer:</strong> {{ email }} ({{ whatsapp or '-' }})</p>
<p>Tambah stok lalu kirim akun lewat <a href="{{ site_url }}/admin/preorder">Pengiriman Pre-Order</a>.</p>
{% endblock %}""",

    "admin_low_stock.html": """{% extends "layout.html" %}{% block content %}
<h3 style="color: red;">Peringatan Stok Menipis</h3>
<p>Produk <strong>{{ product_title }}</strong> tersisa <strong>{{ stock }}</strong> unit.</p>
<p>Segera restock untuk menghindari kehabisan stok.</p>
<p><a href="{{ site_url }}/admin/products">Kelola Stok</a></p>
{% endblock %}""",

    # ---- preorder
    "buyer_preorder.txt": """🎉 *Pesanan Pre-Order Anda Telah Dikirim!*

Produk: *{{ product_title }}*
Jumlah: {{ accounts | length }} akun

📋 *Detail Akun:*
{% for email, password in accounts %}{{ loop.index }}. Email: {{ email }} | Password: {{ password }}
{% endfor %}
⚠️ Segera ganti password setelah login.
Terima kasih telah berbelanja di F-PEDIA!""",

    "buyer_preorder.html": """{% extends "layout.html" %}{% block content %}
<h2>Pesanan Pre-Order Anda Telah Dikirim!</h2>
<p>Produk: <strong>{{ product_title }}</strong></p>
<p>Jumlah: {{ accounts | length }} akun</p>
<h3>Detail Akun:</h3>
<table border="1" cellpadding="8" cellspacing="0" style="border-collapse:collapse;">
  <tr><th>No</th><th>Email</th><th>Password</th></tr>
  {% for email, password in accounts %}<tr><td>{{ loop.index }}</td><td>{{ email }}</td><td>{{ password }}</td></tr>{% endfor %}
</table>
<p>⚠️ Segera ganti password setelah login.</p>
<p>Terima kasih telah berbelanja di F-PEDIA!</p>
{% endblock %}""",

    # ---- otp
    "otp.html": """<div style="font-family: sans-serif; padding: 20px;">
  <h2>Verifikasi OTP F-PEDIA</h2>
  <p>Kode OTP Anda adalah:</p>
  <h1 style="letter-spacing: 5px; color: #2563eb;">{{ code }}</h1>
  <p>JANGAN BERIKAN kode ini kepada siapapun.</p>
  <p>Kode berlaku selama 5 menit.</p>
</div>""",

    "otp.txt": """Kode OTP F-PEDIA Anda: *{{ code }}*

Jangan berikan kode ini kepada siapapun via telepon/WA. Berlaku 5 menit.""",

    # ---- cron
    "payment_reminder.html": """{% extends "layout.html" %}{% block content %}
<h3>Halo, pesanan Anda menunggu pembayaran.</h3>
<p>Produk: <strong>{{ product_title }}</strong></p>
<p>Total: Rp {{ total | idr }}</p>
<p>Silakan selesaikan pembayaran agar pesanan segera diproses.</p>
<p><a href="{{ site_url }}/checkout?order_id={{ transaction_id }}">Bayar Sekarang</a></p>
<p>Jika sudah membayar, abaikan email ini.</p>
{% endblock %}""",
}

env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=False,
)
env.filters["idr"] = format_idr


def render(name: str, **ctx) -> str:
    ctx.setdefault("year", datetime.date.today().year)
    return env.get_template(name).render(**ctx)
