import io

from ftpsession import PrintCommandListener, ResponseParser


def test_password_is_masked():
    out = io.StringIO()
    listener = PrintCommandListener(out)
    listener.command_sent('USER', 'USER alice')
    listener.command_sent('PASS', 'PASS hunter2')
    listener.command_sent('ACCT', 'ACCT billing')
    assert out.getvalue() == 'USER alice\nPASS *******\nACCT *******\n'
    assert 'hunter2' not in out.getvalue()


def test_password_shown_when_not_suppressed():
    out = io.StringIO()
    PrintCommandListener(out, suppress_login=False).command_sent('PASS', 'PASS hunter2')
    assert out.getvalue() == 'PASS hunter2\n'


def test_replies_printed_verbatim():
    out = io.StringIO()
    listener = PrintCommandListener(out)
    listener.reply_received(ResponseParser.parse(['211-Features:', ' SIZE', '211 End']))
    assert out.getvalue() == '211-Features:\n SIZE\n211 End\n'


def test_replies_can_be_silenced():
    out = io.StringIO()
    PrintCommandListener(out, print_replies=False).reply_received(ResponseParser.parse('200 OK'))
    assert out.getvalue() == ''
