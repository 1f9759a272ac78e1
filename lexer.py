import ply.lex as lex

from compiler import fatal

states = (('comment', 'exclusive'),)

tokens = ['LET',
          'EXIT',
          'IDENT',
          'NUMBER',
          'PLUS',
          'MINUS',
          'ASTERIX',
          'EQUAL',
          'SEMICOLON']

keywords = {'let': 'LET',
            'exit': 'EXIT'}


def t_LCOMMENT(t):
    r'\/\*'
    t.lexer.begin('comment')

def t_comment_RCOMMENT(t):
    r'\*\/'
    t.lexer.begin('INITIAL')

def t_comment_newline(t):
    r'\n+'
    t.lexer.lineno += len(t.value)

def t_comment_text(t):
    r'[^*\n]+|\*'

def t_comment_error(t):
    t.lexer.skip(1)

def t_comment_eof(t):
    fatal("unterminated comment, line %d" % t.lexer.lineno)

t_comment_ignore = ''

def t_PLUS(t):
    r'\+'
    return t

def t_MINUS(t):
    r'\-'
    return t

def t_ASTERIX(t):
    r'\*'
    return t

def t_EQUAL(t):
    r'='
    return t

def t_SEMICOLON(t):
    r';'
    return t

def t_IDENT(t):
    r'[A-Za-z_][A-Za-z0-9_]*'
    t.type = keywords.get(t.value, 'IDENT')
    return t

def t_NUMBER(t):
    r'\d+'
    t.value = int(t.value)
    return t

def t_newline(t):
    r'\n+'
    t.lexer.lineno += len(t.value)

t_ignore = ' \t\r'

def t_error(t):
    fatal("unexpected character %r, line %d" % (t.value[0], t.lexer.lineno))

letlexer = lex.lex()


def new_lexer():
    """Return a clone of the module lexer reset to line 1"""
    lexer = letlexer.clone()
    lexer.lineno = 1
    lexer.begin('INITIAL')
    return lexer


def tokenize(text):
    """Scan source text and return the list of ply tokens"""
    lexer = new_lexer()
    lexer.input(text)
    return list(iter(lexer.token, None))


if __name__ == '__main__':

    import sys

    with open(sys.argv[1], "rt") as f:
        text = f.read()

    for t in tokenize(text):
        print(t)
